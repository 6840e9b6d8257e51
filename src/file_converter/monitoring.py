"""Monitoring utilities for dependency checks and Prometheus metrics."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from prometheus_client import Counter, Histogram, start_http_server

from .config import Settings
from .errors import DependencyUnavailable

logger = logging.getLogger(__name__)

CONVERSIONS_TOTAL = Counter(
    "file_conversions_total",
    "Total number of conversions by adapter category and outcome",
    labelnames=("category", "status"),
)
CONVERSION_SECONDS = Histogram(
    "file_conversion_duration_seconds",
    "Wall time spent inside converter adapters",
    labelnames=("category",),
)
CLEANUP_FAILURES = Counter(
    "file_cleanup_failures_total",
    "Transient files that could not be deleted after all retries",
)

_metrics_started = False


def ensure_metrics_server(port: int) -> None:
    global _metrics_started
    if _metrics_started:
        return
    start_http_server(port)
    _metrics_started = True
    logger.info("Prometheus metrics server started", extra={"port": port})


def record_conversion(category: str, status: str, seconds: float | None = None) -> None:
    CONVERSIONS_TOTAL.labels(category=category, status=status).inc()
    if seconds is not None:
        CONVERSION_SECONDS.labels(category=category).observe(seconds)


def record_cleanup_failure() -> None:
    CLEANUP_FAILURES.inc()


@dataclass(frozen=True)
class DependencyStatus:
    name: str
    available: bool
    optional: bool = False
    detail: str = ""

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class ToolProbe:
    name: str
    command: Sequence[str]
    optional: bool = False


def default_probes(settings: Settings) -> List[ToolProbe]:
    conv = settings.conversion
    return [
        ToolProbe("FFmpeg", (conv.ffmpeg_path, "-version")),
        ToolProbe("LibreOffice", (conv.soffice_path, "--version")),
        ToolProbe("ImageMagick", (conv.magick_path, "-version"), optional=True),
    ]


async def _probe_command(probe: ToolProbe, timeout: float) -> DependencyStatus:
    try:
        process = await asyncio.create_subprocess_exec(
            *probe.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return DependencyStatus(probe.name, False, probe.optional, f"{exc.__class__.__name__}: {exc}")

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        return DependencyStatus(probe.name, False, probe.optional, f"timed out after {timeout}s")

    if process.returncode != 0:
        message = (stderr or b"").decode("utf-8", "replace").strip()
        return DependencyStatus(probe.name, False, probe.optional, f"exit {process.returncode}: {message}")

    first_line = (stdout or b"").decode("utf-8", "replace").strip().splitlines()
    return DependencyStatus(probe.name, True, probe.optional, first_line[0] if first_line else "")


async def tcp_unreachable_reason(host: str, port: int, timeout: float) -> Optional[str]:
    """None when ``host:port`` accepts a TCP connection, else the failure class name."""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except (OSError, asyncio.TimeoutError) as exc:
        return exc.__class__.__name__
    writer.close()
    await writer.wait_closed()
    return None


async def _probe_office_service(settings: Settings, timeout: float) -> DependencyStatus:
    host = settings.conversion.office_server_host
    port = settings.conversion.office_server_port
    reason = await tcp_unreachable_reason(host, port, timeout)
    if reason:
        return DependencyStatus("OfficeService", False, True, f"{host}:{port} unreachable ({reason})")
    return DependencyStatus("OfficeService", True, True, f"{host}:{port}")


async def check_dependencies(
    settings: Settings, probes: Iterable[ToolProbe] | None = None
) -> List[DependencyStatus]:
    """Probe every external tool concurrently; results keep probe order."""

    timeout = settings.dependencies.probe_timeout_sec
    tool_probes = list(probes) if probes is not None else default_probes(settings)
    results = await asyncio.gather(
        *(_probe_command(probe, timeout) for probe in tool_probes),
        _probe_office_service(settings, timeout),
    )

    for status in results:
        if status.available:
            logger.info("%s is available: %s", status.name, status.detail)
        elif status.optional:
            logger.warning("%s is not available: %s", status.name, status.detail)
        else:
            logger.error("%s is not available: %s", status.name, status.detail)
    return list(results)


def require_mandatory(statuses: Iterable[DependencyStatus]) -> None:
    missing = [status for status in statuses if not status.available and not status.optional]
    if missing:
        names = ", ".join(status.name for status in missing)
        raise DependencyUnavailable(
            f"Required dependency {names} is not available. Please install it.",
            dependencies=[status.to_dict() for status in missing],
        )
