from fastapi import APIRouter, Depends

from lenswatch.api.deps import get_store, get_view_router
from lenswatch.data.store import InterventionStore
from lenswatch.logic import aggregation
from lenswatch.services.views import ViewRouter

router = APIRouter(tags=["Statistics"])


@router.get("/dashboard")
def dashboard(views: ViewRouter = Depends(get_view_router)):
    return views.dashboard()


@router.get("/stats")
def statistics(store: InterventionStore = Depends(get_store)):
    return aggregation.statistics(store.snapshot())


@router.get("/stats/latest")
def latest_per_machine(store: InterventionStore = Depends(get_store)):
    latest = aggregation.latest_per_machine(store.snapshot())
    return {machine: record.to_wire() for machine, record in sorted(latest.items())}
