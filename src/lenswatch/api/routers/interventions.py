from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Response

from lenswatch.api.deps import get_store
from lenswatch.config import settings
from lenswatch.data.store import InterventionStore, parse_new_intervention
from lenswatch.domain.models import InterventionFilter
from lenswatch.logic import filters

router = APIRouter(prefix="/interventions", tags=["Interventions"])


@router.get("")
def list_interventions(
    search: str = Query("", description="Case-insensitive text searched in every field"),
    machine: str = Query(""),
    intervenant: str = Query(""),
    type: str = Query(""),
    lentille: str = Query(""),
    date: Optional[str] = Query(None, description="Date prefix: YYYY, YYYY-MM or YYYY-MM-DD"),
    store: InterventionStore = Depends(get_store),
):
    spec = InterventionFilter(
        search=search,
        machine=machine,
        intervenant=intervenant,
        type=type,
        lentille=lentille,
        date=date or "",
    )
    rows = filters.apply_filters(store.snapshot(), spec)
    return {"count": len(rows), "rows": [r.to_wire() for r in rows]}


@router.get("/lenses")
def list_lenses(store: InterventionStore = Depends(get_store)):
    return {"lentilles": filters.distinct_lenses(store.snapshot())}


@router.post("", status_code=201)
def create_intervention(
    payload: dict[str, Any] = Body(...),
    store: InterventionStore = Depends(get_store),
):
    new = parse_new_intervention(payload).with_default_lens(settings.catalog.lens_for)
    record = store.add(new)
    return record.to_wire()


@router.delete("/{intervention_id}", status_code=204)
def delete_intervention(intervention_id: str, store: InterventionStore = Depends(get_store)):
    store.delete(intervention_id)
    return Response(status_code=204)
