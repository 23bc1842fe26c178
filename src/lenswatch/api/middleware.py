import logging
import time
from uuid import uuid4

from fastapi import Request
from fastapi.responses import JSONResponse

from lenswatch.config import settings

logger = logging.getLogger("lenswatch.api")

_BODY_METHODS = {"POST", "PUT", "PATCH"}


async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or uuid4().hex
    request.state.request_id = rid
    response = await call_next(request)
    response.headers["x-request-id"] = rid
    return response


async def enforce_body_size(request: Request, call_next):
    """Rejects oversized uploads (JSON backups) from their Content-Length before reading them."""
    if request.method not in _BODY_METHODS:
        return await call_next(request)
    limit_mb = settings.security.max_upload_mb
    try:
        declared = int(request.headers.get("content-length") or 0)
    except ValueError:
        declared = 0
    if limit_mb and declared > limit_mb * 1024 * 1024:
        return JSONResponse(
            status_code=413,
            content={
                "error": "request_too_large",
                "detail": f"Max upload size is {limit_mb}MB",
                "request_id": getattr(request.state, "request_id", None),
            },
        )
    return await call_next(request)


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    status = "error"
    try:
        response = await call_next(request)
        status = response.status_code
        return response
    finally:
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            f"{request.method} {request.url.path} -> {status} ({duration_ms} ms)",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
