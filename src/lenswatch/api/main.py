import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from lenswatch.config import settings
from lenswatch.exceptions import (
    AnalysisCancelledError,
    AnalysisResponseError,
    AnalysisServiceError,
    AnalysisStatusError,
    AnalysisTimeoutError,
    ConfigError,
    MissingCredentialError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from lenswatch.api.middleware import add_request_id, enforce_body_size, log_requests

# Routers
from lenswatch.api.routers import analysis, interventions, stats, system, tools

# Configure logging
logging.basicConfig(level=getattr(logging, settings.logging.level.upper(), logging.INFO))
logger = logging.getLogger("lenswatch.api")


def _error(request: Request, status_code: int, error: str, detail, /, **extra) -> JSONResponse:
    payload = {"error": error, "detail": detail, **extra}
    rid = getattr(request.state, "request_id", None)
    if rid:
        payload["request_id"] = rid
    return JSONResponse(status_code=status_code, content=payload)


def create_app(db_path: Optional[Path] = None) -> FastAPI:
    """
    Factory to build the FastAPI application.
    Passing db_path points the SQLite backend at another file (used by tests).
    """
    if db_path:
        settings.paths.db_path = db_path
        import lenswatch.api.deps as deps
        deps.reset_store()

    app = FastAPI(title=f"{settings.app.name} API", version=settings.app.version)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Last registered runs first: the request id is set before size checks and logging.
    app.middleware("http")(enforce_body_size)
    if settings.logging.log_requests:
        app.middleware("http")(log_requests)
    app.middleware("http")(add_request_id)

    app.include_router(system.router)
    app.include_router(interventions.router)
    app.include_router(stats.router)
    app.include_router(tools.router)
    app.include_router(analysis.router)

    @app.exception_handler(ValidationError)
    async def validation_exception_handler(request: Request, exc: ValidationError):
        return _error(request, 422, "validation_error", str(exc), errors=exc.errors)

    @app.exception_handler(NotFoundError)
    async def not_found_exception_handler(request: Request, exc: NotFoundError):
        return _error(request, 404, "not_found", str(exc))

    @app.exception_handler(PersistenceError)
    async def persistence_exception_handler(request: Request, exc: PersistenceError):
        logger.error(f"Persistence failure on {request.url.path}: {exc}")
        return _error(request, 503, "data_unavailable", str(exc))

    @app.exception_handler(AnalysisServiceError)
    async def analysis_exception_handler(request: Request, exc: AnalysisServiceError):
        if isinstance(exc, MissingCredentialError):
            return _error(request, 400, "missing_credential", str(exc))
        if isinstance(exc, AnalysisTimeoutError):
            return _error(request, 504, "analysis_timeout", str(exc))
        logger.warning(f"Analysis failed: {exc}")
        if isinstance(exc, AnalysisStatusError):
            return _error(request, 502, "analysis_status_error", str(exc), status_code=exc.status_code)
        if isinstance(exc, AnalysisResponseError):
            return _error(request, 502, "analysis_bad_response", str(exc))
        if isinstance(exc, AnalysisCancelledError):
            return _error(request, 499, "analysis_cancelled", str(exc))
        return _error(request, 502, "analysis_failed", str(exc))

    @app.exception_handler(ConfigError)
    async def config_exception_handler(request: Request, exc: ConfigError):
        return _error(request, 500, "config_error", str(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        if isinstance(exc, StarletteHTTPException):
            return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

        rid = getattr(request.state, "request_id", None)
        logger.exception("Unhandled error", extra={"path": str(request.url), "request_id": rid})
        return _error(request, 500, "internal_error", "Unexpected server error")

    return app

# Module-level app for uvicorn entrypoint
app = create_app()
