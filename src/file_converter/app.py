"""FastAPI application factory for the file conversion service."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .adapters import AdapterRegistry, build_default_adapters
from .adapters.base import log_progress
from .api.routes import router as api_router
from .cleanup import CleanupService
from .config import Settings, get_settings, settings_dependency
from .errors import ServiceError, error_payload
from .formats import build_default_registry
from .logging import configure_logging, get_logger
from .monitoring import ToolProbe, check_dependencies, ensure_metrics_server, require_mandatory
from .orchestrator import ConversionOrchestrator
from .validation import ConversionValidator
from .workspace import Workspace

logger = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    app.state.orchestrator.workspace.ensure_directories()

    if settings.dependencies.check_on_startup:
        statuses = await check_dependencies(settings, app.state.probes)
        require_mandatory(statuses)

    if settings.monitoring.metrics_enabled:
        ensure_metrics_server(settings.monitoring.prometheus_port)

    app.state.started_at = time.monotonic()
    logger.info("File conversion service started", environment=settings.environment)
    try:
        yield
    finally:
        await app.state.orchestrator.cleanup.drain()
        logger.info("File conversion service stopped")


def _install_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        if exc.http_status >= 500:
            logger.error("Request failed", path=request.url.path, error_code=exc.code, error=exc.message)
        else:
            logger.warning("Request rejected", path=request.url.path, error_code=exc.code, error=exc.message)
        headers = None
        retry_after = exc.extra.get("retry_after")
        if retry_after is not None:
            headers = {"Retry-After": str(retry_after)}
        return JSONResponse(
            status_code=exc.http_status,
            content=error_payload(exc, include_details=settings.expose_error_details),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        body = {"error": "Invalid request", "error_code": "ERR_BAD_REQUEST"}
        if settings.expose_error_details:
            body["details"] = [error.get("msg", "") for error in exc.errors()]
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error", path=request.url.path)
        body = {"error": "Internal server error"}
        if settings.expose_error_details:
            body["details"] = f"{exc.__class__.__name__}: {exc}"
        return JSONResponse(status_code=500, content=body)


def create_app(
    settings: Optional[Settings] = None,
    *,
    adapters: Optional[AdapterRegistry] = None,
    probes: Optional[Iterable[ToolProbe]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.logging, json_output=settings.environment.lower() == "production")

    formats = build_default_registry()
    validator = ConversionValidator(formats)
    adapters = adapters or build_default_adapters(settings, formats)
    adapters.verify(formats, validator)

    workspace = Workspace(settings.directories)
    cleanup = CleanupService(
        max_attempts=settings.cleanup.max_attempts,
        retry_delay_sec=settings.cleanup.retry_delay_sec,
    )
    orchestrator = ConversionOrchestrator(
        formats,
        validator,
        adapters,
        workspace,
        cleanup,
        timeout_sec=settings.conversion.timeout_sec,
        progress=log_progress,
    )

    app = FastAPI(title="File Conversion Service", version=settings.api_version, lifespan=_lifespan)
    app.state.settings = settings
    app.state.orchestrator = orchestrator
    app.state.probes = list(probes) if probes is not None else None
    app.state.started_at = time.monotonic()
    app.dependency_overrides[settings_dependency] = lambda: settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-File-Metadata", "Content-Disposition"],
        allow_credentials=True,
    )
    app.add_middleware(GZipMiddleware, minimum_size=settings.compression_min_bytes)
    _install_exception_handlers(app, settings)
    app.include_router(api_router)

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("file_converter.app:create_app", factory=True, host=settings.host, port=settings.port)
