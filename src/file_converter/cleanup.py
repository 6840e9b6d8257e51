"""Deletion of transient files with bounded retry; never raises to callers."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Set

from .monitoring import record_cleanup_failure

logger = logging.getLogger(__name__)


class CleanupService:
    def __init__(self, *, max_attempts: int = 3, retry_delay_sec: float = 1.0) -> None:
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay_sec
        self._pending: Set[asyncio.Task[None]] = set()

    async def cleanup(self, *paths: str | Path | None) -> None:
        """Delete every given path concurrently; missing paths are a no-op."""
        targets = list(dict.fromkeys(Path(p) for p in paths if p))
        if not targets:
            return
        await asyncio.gather(*(self._remove(path) for path in targets))

    def schedule(self, *paths: str | Path | None) -> asyncio.Task[None]:
        """Fire-and-forget variant of :meth:`cleanup`."""
        task = asyncio.get_running_loop().create_task(self.cleanup(*paths))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def _remove(self, path: Path) -> None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                await asyncio.to_thread(path.unlink)
            except FileNotFoundError:
                return
            except OSError as exc:
                if attempt >= self._max_attempts:
                    logger.error(
                        "Failed to cleanup file after %d attempts: %s", attempt, path, exc_info=exc
                    )
                    record_cleanup_failure()
                    return
                logger.warning("Cleanup attempt %d failed for %s: %s", attempt, path, exc)
                await asyncio.sleep(self._retry_delay)
            else:
                logger.info("Cleaned up file: %s", path)
                return
