"""HTTP routes: single and batch conversion, downloads, catalog and probes."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

import psutil
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Request, UploadFile

from ..config import Settings, settings_dependency
from ..delivery import deliver
from ..errors import BadRequest, BatchLimitExceeded, NotFound
from ..monitoring import check_dependencies
from ..orchestrator import ConversionOrchestrator, ConversionRequest, SourceFile
from ..security import enforce_rate_limit
from ..workspace import display_name
from .schemas import BatchFileResult, BatchResponse, HealthResponse, MemorySnapshot, SystemInfoResponse

logger = logging.getLogger(__name__)
router = APIRouter()

MIN_QUALITY = 1
MAX_QUALITY = 100


def get_orchestrator(request: Request) -> ConversionOrchestrator:
    return request.app.state.orchestrator


def parse_quality(raw: Optional[str], default: int) -> int:
    """Lenient quality parsing: blanks, garbage and zero fall back to ``default``."""

    if raw is None:
        return default
    try:
        value = int(float(raw.strip()))
    except (ValueError, OverflowError):
        return default
    if value == 0:
        return default
    return max(MIN_QUALITY, min(MAX_QUALITY, value))


async def _store_upload(upload: UploadFile, orchestrator: ConversionOrchestrator, settings: Settings) -> SourceFile:
    original_name = upload.filename or "upload"
    max_bytes = settings.file_limits.max_upload_size_mb * 1024 * 1024
    try:
        path, size_bytes = await orchestrator.workspace.save_upload(original_name, upload.read, max_bytes=max_bytes)
    finally:
        await upload.close()
    return SourceFile(path=path, original_name=original_name, size_bytes=size_bytes)


@router.post("/convert", dependencies=[Depends(enforce_rate_limit)])
async def convert_file(
    file: Optional[UploadFile] = File(None),
    target: str = Form(""),
    quality: Optional[str] = Form(None),
    settings: Settings = Depends(settings_dependency),
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
):
    if file is None:
        raise BadRequest("No file uploaded")

    source = await _store_upload(file, orchestrator, settings)
    request = ConversionRequest(
        source=source,
        target_format=target,
        options={"quality": parse_quality(quality, settings.file_limits.default_quality)},
    )
    result = await orchestrator.convert(request)
    return await deliver(
        result.outcome.output_path,
        result.download_name,
        result.cleanup_paths,
        result.metadata,
        cleanup=orchestrator.cleanup,
    )


@router.post("/convert/batch", response_model=BatchResponse, dependencies=[Depends(enforce_rate_limit)])
async def convert_batch(
    background_tasks: BackgroundTasks,
    files: Optional[List[UploadFile]] = File(None),
    target: str = Form(""),
    quality: Optional[str] = Form(None),
    settings: Settings = Depends(settings_dependency),
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
) -> BatchResponse:
    if not files:
        raise BadRequest("No files uploaded")
    limit = settings.file_limits.max_files_per_batch
    if len(files) > limit:
        raise BatchLimitExceeded(f"Too many files (max {limit})")

    sources: List[SourceFile] = []
    try:
        for upload in files:
            sources.append(await _store_upload(upload, orchestrator, settings))
    except BaseException:
        await orchestrator.cleanup.cleanup(*(source.path for source in sources))
        raise

    options = {"quality": parse_quality(quality, settings.file_limits.default_quality)}
    requests = [ConversionRequest(source=source, target_format=target, options=dict(options)) for source in sources]
    report = await orchestrator.convert_batch(requests, target)
    background_tasks.add_task(orchestrator.cleanup.cleanup, *report.cleanup_paths)

    return BatchResponse(
        results=[
            BatchFileResult(
                filename=item.filename,
                success=item.success,
                converted_name=item.converted_name,
                download_path=item.download_path,
                error=item.error,
            )
            for item in report.results
        ],
        total_files=report.total_count,
        success_count=report.success_count,
    )


@router.get("/download/{filename}")
async def download_file(filename: str, orchestrator: ConversionOrchestrator = Depends(get_orchestrator)):
    path = orchestrator.workspace.resolve_output(filename)
    if path is None:
        raise NotFound("File not found")
    return await deliver(path, display_name(filename), cleanup=orchestrator.cleanup)


@router.get("/formats")
async def list_formats(orchestrator: ConversionOrchestrator = Depends(get_orchestrator)) -> dict:
    return orchestrator.formats.to_dict()


@router.get("/system-info", response_model=SystemInfoResponse)
async def system_info(
    request: Request,
    settings: Settings = Depends(settings_dependency),
    orchestrator: ConversionOrchestrator = Depends(get_orchestrator),
) -> SystemInfoResponse:
    statuses = await check_dependencies(settings, request.app.state.probes)
    memory = psutil.Process().memory_info()
    degraded = any(not status.available and not status.optional for status in statuses)
    return SystemInfoResponse(
        status="degraded" if degraded else "healthy",
        timestamp=datetime.now(timezone.utc),
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
        memory=MemorySnapshot(rss=memory.rss, vms=memory.vms),
        supported_formats=list(orchestrator.formats.list_categories()),
        max_file_size=f"{settings.file_limits.max_upload_size_mb}MB",
        max_batch_files=settings.file_limits.max_files_per_batch,
        dependencies={status.name: status.available for status in statuses},
        adapters=[adapter.describe() for adapter in orchestrator.adapters.list()],
    )


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(timestamp=datetime.now(timezone.utc))
