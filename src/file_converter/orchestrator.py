"""Per-request conversion state machine with single and batch entry points."""

from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath
from typing import Any, Dict, List, Optional
from uuid import uuid4

from .adapters import AdapterRegistry, ConversionInput, ConversionOutcome, ProgressCallback
from .cleanup import CleanupService
from .errors import (
    BadRequest,
    ConversionFailed,
    ConversionTimeout,
    ServiceError,
    UnsupportedConversion,
)
from .formats import FormatRegistry, normalize_format
from .logging import get_logger, request_context
from .monitoring import record_conversion
from .validation import ConversionValidator
from .workspace import Workspace

logger = get_logger(__name__)


class JobState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS = {
    JobState.RECEIVED: {JobState.VALIDATED, JobState.FAILED},
    JobState.VALIDATED: {JobState.DISPATCHED, JobState.FAILED},
    JobState.DISPATCHED: {JobState.COMPLETED, JobState.FAILED},
    JobState.COMPLETED: set(),
    JobState.FAILED: set(),
}


@dataclass
class SourceFile:
    path: Path
    original_name: str
    size_bytes: int

    @property
    def extension(self) -> str:
        return normalize_format(PurePath(self.original_name).suffix)

    @property
    def stem(self) -> str:
        return PurePath(self.original_name).stem or "file"


@dataclass
class ConversionRequest:
    source: SourceFile
    target_format: str
    options: Dict[str, Any] = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: uuid4().hex)


@dataclass
class ConversionResult:
    request_id: str
    outcome: ConversionOutcome
    download_name: str
    metadata: Dict[str, Any]
    cleanup_paths: List[Path]


@dataclass
class FileReport:
    filename: str
    success: bool
    converted_name: Optional[str] = None
    download_path: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BatchReport:
    results: List[FileReport]
    cleanup_paths: List[Path] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for report in self.results if report.success)

    @property
    def total_count(self) -> int:
        return len(self.results)


class ConversionJob:
    """Tracks one request through the state machine and the files it owns."""

    def __init__(self, request: ConversionRequest) -> None:
        self.request = request
        self.state = JobState.RECEIVED
        self.output_path: Optional[Path] = None
        self.started = time.monotonic()

    @property
    def transient_paths(self) -> List[Path]:
        paths = [self.request.source.path]
        if self.output_path is not None:
            paths.append(self.output_path)
        return paths

    def advance(self, state: JobState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal job transition {self.state.value} -> {state.value}")
        logger.debug("job transition", previous=self.state.value, state=state.value)
        self.state = state


def compression_ratio(original_size: int, converted_size: int) -> int:
    if original_size <= 0:
        return 0
    return round((1 - converted_size / original_size) * 100)


class ConversionOrchestrator:
    def __init__(
        self,
        formats: FormatRegistry,
        validator: ConversionValidator,
        adapters: AdapterRegistry,
        workspace: Workspace,
        cleanup: CleanupService,
        *,
        timeout_sec: float | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        self.formats = formats
        self.validator = validator
        self.adapters = adapters
        self.workspace = workspace
        self.cleanup = cleanup
        self._timeout = timeout_sec
        self._progress = progress

    async def convert(self, request: ConversionRequest) -> ConversionResult:
        """Run one request; on failure its transient files are gone before the error propagates."""

        job = ConversionJob(request)
        try:
            return await self._process(job)
        except BaseException:
            await self.cleanup.cleanup(*job.transient_paths)
            raise

    async def convert_batch(self, requests: List[ConversionRequest], target_format: str) -> BatchReport:
        """Convert files independently; cleanup is left to the caller via ``cleanup_paths``."""

        if not normalize_format(target_format):
            await self.cleanup.cleanup(*(request.source.path for request in requests))
            raise BadRequest("Target format is required")

        outcomes = await asyncio.gather(*(self._process_isolated(request) for request in requests))
        report = BatchReport(results=[])
        for file_report, paths in outcomes:
            report.results.append(file_report)
            report.cleanup_paths.extend(paths)
        logger.info(
            "Batch conversion completed",
            success_count=report.success_count,
            total_count=report.total_count,
        )
        return report

    async def _process_isolated(self, request: ConversionRequest) -> tuple[FileReport, List[Path]]:
        job = ConversionJob(request)
        try:
            result = await self._process(job)
        except ServiceError as exc:
            return FileReport(filename=request.source.original_name, success=False, error=exc.message), job.transient_paths
        except Exception as exc:
            logger.exception("Unexpected batch conversion failure")
            return FileReport(filename=request.source.original_name, success=False, error=str(exc)), job.transient_paths

        output_name = result.outcome.output_path.name
        report = FileReport(
            filename=request.source.original_name,
            success=True,
            converted_name=result.download_name,
            download_path=f"/download/{output_name}",
        )
        return report, result.cleanup_paths

    async def _process(self, job: ConversionJob) -> ConversionResult:
        request = job.request
        with request_context(request.request_id):
            try:
                return await self._dispatch(job)
            except BaseException:
                if job.state not in (JobState.COMPLETED, JobState.FAILED):
                    job.advance(JobState.FAILED)
                raise

    async def _dispatch(self, job: ConversionJob) -> ConversionResult:
        request = job.request
        source = request.source
        target = normalize_format(request.target_format)

        if not target:
            raise BadRequest("Target format is required")
        if not source.path.is_file() or not os.access(source.path, os.R_OK):
            raise BadRequest("Uploaded file is missing or unreadable")
        job.advance(JobState.VALIDATED)

        decision = self.validator.validate(source.extension, target)
        if not decision.allowed:
            raise UnsupportedConversion(decision.reason, supportedFormats=self.formats.to_dict())
        category = self.validator.adapter_category(source.extension, target)
        adapter = self.adapters.get(category)

        download_name = f"{source.stem}-converted.{target}"
        job.output_path = self.workspace.output_path(download_name)
        job.advance(JobState.DISPATCHED)
        logger.info("Starting conversion", source=source.original_name, target=target, adapter=adapter.name)

        payload = ConversionInput(
            input_path=source.path,
            output_path=job.output_path,
            target_format=target,
            options=dict(request.options),
        )
        adapter_started = time.monotonic()
        try:
            outcome = await asyncio.wait_for(adapter.convert(payload, progress=self._progress), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            record_conversion(category, "timeout", time.monotonic() - adapter_started)
            raise ConversionTimeout(f"Conversion timed out after {self._timeout}s") from exc
        except ServiceError:
            record_conversion(category, "failure", time.monotonic() - adapter_started)
            raise
        except Exception as exc:
            record_conversion(category, "failure", time.monotonic() - adapter_started)
            raise ConversionFailed(str(exc) or "Conversion failed") from exc
        record_conversion(category, "success", time.monotonic() - adapter_started)

        processing_time = int((time.monotonic() - job.started) * 1000)
        ratio = compression_ratio(source.size_bytes, outcome.size_bytes)
        outcome.compression_ratio = ratio
        metadata = {
            "originalSize": source.size_bytes,
            "convertedSize": outcome.size_bytes,
            "processingTime": processing_time,
            "format": target,
            "compressionRatio": ratio,
            "quality": request.options.get("quality"),
        }
        job.advance(JobState.COMPLETED)
        logger.info(
            "Conversion completed",
            download_name=download_name,
            processing_ms=processing_time,
            original_size=source.size_bytes,
            converted_size=outcome.size_bytes,
            compression_ratio=ratio,
        )
        return ConversionResult(
            request_id=request.request_id,
            outcome=outcome,
            download_name=download_name,
            metadata=metadata,
            cleanup_paths=[source.path],
        )
