"""Upload, scratch and output directories plus request-unique file naming."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path, PurePath
from typing import Awaitable, Callable
from uuid import uuid4

from .config import DirectorySettings
from .errors import FileTooLarge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def sanitize_filename(name: str) -> str:
    base = PurePath(name.replace("\\", "/")).name or "upload"
    return _UNSAFE_CHARS.sub("_", base)


def unique_prefix() -> str:
    return f"{int(time.time() * 1000)}-{uuid4().hex}"


_PREFIX = re.compile(r"^\d+-[0-9a-f]{32}-")


def display_name(generated: str) -> str:
    """Strip the request-unique prefix from a generated file name."""
    return _PREFIX.sub("", generated, count=1) or generated


class Workspace:
    def __init__(self, directories: DirectorySettings) -> None:
        self.upload_dir = Path(directories.upload_dir).resolve()
        self.temp_dir = Path(directories.temp_dir).resolve()
        self.output_dir = Path(directories.output_dir).resolve()

    def ensure_directories(self) -> None:
        for directory in (self.upload_dir, self.temp_dir, self.output_dir):
            directory.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Directories ready: uploads=%s temp=%s output=%s",
            self.upload_dir,
            self.temp_dir,
            self.output_dir,
        )

    def upload_path(self, original_name: str) -> Path:
        return self.upload_dir / f"{unique_prefix()}-{sanitize_filename(original_name)}"

    def output_path(self, download_name: str) -> Path:
        return self.output_dir / f"{unique_prefix()}-{sanitize_filename(download_name)}"

    def resolve_output(self, filename: str) -> Path | None:
        """Map a generated output name back to its path; anything but a bare name is rejected."""
        if not filename or PurePath(filename).name != filename or filename in {".", ".."}:
            return None
        candidate = self.output_dir / filename
        return candidate if candidate.is_file() else None

    async def save_upload(
        self,
        original_name: str,
        reader: Callable[[int], Awaitable[bytes]],
        *,
        max_bytes: int,
    ) -> tuple[Path, int]:
        """Stream an upload to disk, enforcing ``max_bytes``; returns (path, size)."""

        destination = self.upload_path(original_name)
        destination.parent.mkdir(parents=True, exist_ok=True)
        size_bytes = 0
        try:
            with destination.open("wb") as handle:
                while True:
                    chunk = await reader(CHUNK_SIZE)
                    if not chunk:
                        break
                    size_bytes += len(chunk)
                    if size_bytes > max_bytes:
                        limit_mb = max_bytes // (1024 * 1024)
                        raise FileTooLarge(f"File too large (max {limit_mb}MB)")
                    handle.write(chunk)
        except BaseException:
            destination.unlink(missing_ok=True)
            raise
        return destination, size_bytes
