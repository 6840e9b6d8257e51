"""Streams converted artifacts back and removes them once the stream is over."""

from __future__ import annotations

import json
import logging
import mimetypes
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from starlette.responses import FileResponse
from starlette.types import Receive, Scope, Send

from .cleanup import CleanupService
from .errors import OutputMissing

logger = logging.getLogger(__name__)

METADATA_HEADER = "X-File-Metadata"

for _type, _ext in (
    ("image/webp", ".webp"),
    ("image/avif", ".avif"),
    ("audio/flac", ".flac"),
    ("audio/aac", ".aac"),
    ("audio/mp4", ".m4a"),
    ("audio/ogg", ".ogg"),
    ("video/webm", ".webm"),
    ("video/x-matroska", ".mkv"),
    ("video/x-flv", ".flv"),
    ("application/vnd.oasis.opendocument.text", ".odt"),
):
    mimetypes.add_type(_type, _ext)


def guess_media_type(name: str) -> str:
    return mimetypes.guess_type(name)[0] or "application/octet-stream"


class CleanupFileResponse(FileResponse):
    """FileResponse that deletes its file and companions after the ASGI send finishes or fails."""

    def __init__(self, path: Path, *, cleanup: CleanupService, cleanup_paths: Iterable[Path], **kwargs: Any) -> None:
        super().__init__(path, **kwargs)
        self._cleanup = cleanup
        self._cleanup_paths: List[Path] = [Path(path), *cleanup_paths]
        self._cleaned = False

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except Exception:
            logger.exception("File stream error: %s", self.path)
            raise
        finally:
            await self.run_cleanup()

    async def run_cleanup(self) -> None:
        if self._cleaned:
            return
        self._cleaned = True
        await self._cleanup.cleanup(*self._cleanup_paths)


async def deliver(
    output_path: Path,
    download_name: str,
    extra_paths: Iterable[Path] = (),
    metadata: Optional[Dict[str, Any]] = None,
    *,
    cleanup: CleanupService,
) -> CleanupFileResponse:
    extras = [Path(p) for p in extra_paths]
    output_path = Path(output_path)
    if not output_path.is_file():
        await cleanup.cleanup(*extras)
        raise OutputMissing("Output file not found")

    stat_result = os.stat(output_path)
    return CleanupFileResponse(
        output_path,
        cleanup=cleanup,
        cleanup_paths=extras,
        media_type=guess_media_type(download_name),
        filename=download_name,
        stat_result=stat_result,
        headers={METADATA_HEADER: json.dumps(metadata or {})},
    )
