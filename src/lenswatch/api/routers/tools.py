import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile

from lenswatch.api.deps import get_excel_exporter, get_import_service, get_json_exporter, get_store
from lenswatch.data.import_service import ImportService
from lenswatch.data.store import InterventionStore
from lenswatch.services.exporter import ExcelExporter, JsonExporter, export_filename

logger = logging.getLogger("lenswatch.api.tools")
router = APIRouter(prefix="/tools", tags=["Data tools"])

_XLSX_MEDIA = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@router.get("/export")
def export_json(
    store: InterventionStore = Depends(get_store),
    exporter: JsonExporter = Depends(get_json_exporter),
):
    body = exporter.dumps(store.snapshot())
    return Response(
        content=body.encode("utf-8"),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


@router.get("/export.xlsx")
def export_excel(
    store: InterventionStore = Depends(get_store),
    exporter: ExcelExporter = Depends(get_excel_exporter),
):
    buffer = exporter.build(store.snapshot())
    return Response(
        content=buffer.getvalue(),
        media_type=_XLSX_MEDIA,
        headers={"Content-Disposition": f'attachment; filename="{export_filename(suffix="xlsx")}"'},
    )


@router.post("/import")
async def import_json(
    file: UploadFile = File(...),
    svc: ImportService = Depends(get_import_service),
):
    content = await file.read()
    imported = svc.import_json(content)
    logger.info(f"Imported {len(imported)} interventions from upload {file.filename!r}")
    return {"imported": len(imported)}


@router.delete("/interventions")
def delete_all(
    confirm: bool = Query(False, description="Must be true: deletes every intervention irreversibly"),
    store: InterventionStore = Depends(get_store),
):
    if not confirm:
        raise HTTPException(status_code=400, detail="Confirmation required: pass confirm=true to delete all interventions")
    removed = store.delete_all()
    return {"deleted": removed}
