import asyncio
import logging
import threading

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from lenswatch.ai import AnalysisService, CredentialStore
from lenswatch.api.deps import get_analysis_service, get_credentials, get_store
from lenswatch.data.store import InterventionStore

logger = logging.getLogger("lenswatch.api.analysis")
router = APIRouter(prefix="/analysis", tags=["Analysis"])

_DISCONNECT_POLL_SECONDS = 0.25


@router.get("/credential")
def credential_status(credentials: CredentialStore = Depends(get_credentials)):
    return {"configured": credentials.is_configured}


@router.put("/credential")
def save_credential(
    api_key: str = Body(..., embed=True),
    credentials: CredentialStore = Depends(get_credentials),
):
    if not api_key.strip():
        raise HTTPException(status_code=422, detail="api_key must not be empty")
    credentials.save(api_key)
    return {"configured": True}


@router.delete("/credential")
def clear_credential(credentials: CredentialStore = Depends(get_credentials)):
    credentials.clear()
    return {"configured": credentials.is_configured}


@router.post("")
async def run_analysis(
    request: Request,
    store: InterventionStore = Depends(get_store),
    svc: AnalysisService = Depends(get_analysis_service),
):
    """Runs off the event loop; a client that disconnects cancels the pending call."""
    records = await run_in_threadpool(store.snapshot)
    cancel = threading.Event()
    watcher = asyncio.create_task(cancel_on_disconnect(request, cancel))
    try:
        return await run_in_threadpool(svc.analyse, records, cancel)
    finally:
        watcher.cancel()


async def cancel_on_disconnect(request: Request, cancel: threading.Event) -> None:
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected; cancelling analysis")
            cancel.set()
            return
        await asyncio.sleep(_DISCONNECT_POLL_SECONDS)
