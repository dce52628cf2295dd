"""
Main FastAPI application for the document conversion tracker.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .exceptions import (
    ConflictError,
    DispatchError,
    InvalidInputError,
    NotFoundError,
    NotReadyError,
    StorageError,
)
from .routers.callbacks import router as callbacks_router
from .routers.config import router as config_router
from .routers.health import router as health_router
from .routers.jobs import router as jobs_router
from .services.orchestration.job_service import JobLifecycleService, build_job_service

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    InvalidInputError: 400,
    NotReadyError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    StorageError: 503,
    DispatchError: 503,
}

_PUBLIC_MESSAGES = {
    StorageError: "Storage service unavailable",
    DispatchError: "Conversion service unavailable",
}


async def _domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    for exc_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, exc_type):
            break
    else:
        status_code = 500
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        detail = _PUBLIC_MESSAGES.get(type(exc), "Internal error")
    else:
        detail = str(exc)
    return JSONResponse(status_code=status_code, content={"detail": detail})


def create_app(
    settings: Optional[Settings] = None,
    job_service: Optional[JobLifecycleService] = None,
) -> FastAPI:
    """Build the application around an explicitly constructed job service."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.job_service = job_service or build_job_service(settings)

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for exc_type in _STATUS_BY_ERROR:
        app.add_exception_handler(exc_type, _domain_error_handler)

    # Routers
    app.include_router(health_router, prefix=settings.API_PREFIX)
    app.include_router(config_router, prefix=settings.API_PREFIX)
    app.include_router(jobs_router, prefix=settings.API_PREFIX)
    app.include_router(callbacks_router, prefix=settings.API_PREFIX)

    @app.get("/", tags=["root"])
    async def root() -> dict:
        """Simple root endpoint."""
        return {"name": app.title, "version": app.version}

    return app


app = create_app()
