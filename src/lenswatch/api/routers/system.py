from typing import Optional

from fastapi import APIRouter, Depends, Query

from lenswatch.api.deps import get_store, get_view_router
from lenswatch.config import settings
from lenswatch.data.store import InterventionStore
from lenswatch.domain.models import InterventionFilter
from lenswatch.services.views import ViewRouter, resolve_view

router = APIRouter(tags=["System"])


@router.get("/health")
def health(store: InterventionStore = Depends(get_store)):
    return {
        "status": "ok",
        "version": settings.app.version,
        "storage": settings.storage.backend,
        "data": store.status.value,
    }


@router.get("/views/{view}")
def render_view(
    view: str,
    search: str = Query(""),
    machine: str = Query(""),
    intervenant: str = Query(""),
    type: str = Query(""),
    lentille: str = Query(""),
    date: Optional[str] = Query(None),
    views: ViewRouter = Depends(get_view_router),
):
    """Payload for one screen; unknown view names fall back to the dashboard."""
    spec = InterventionFilter(
        search=search,
        machine=machine,
        intervenant=intervenant,
        type=type,
        lentille=lentille,
        date=date or "",
    )
    return views.render(resolve_view(view), spec=spec)
