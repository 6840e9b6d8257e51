"""Base classes shared by the converter adapters."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from ..formats import FormatRegistry

logger = logging.getLogger(__name__)


@dataclass
class ConversionInput:
    input_path: Path
    output_path: Path
    target_format: str
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ConversionOutcome:
    output_path: Path
    size_bytes: int
    elapsed_ms: int
    options: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    compression_ratio: Optional[int] = None


@dataclass(frozen=True)
class ProgressEvent:
    kind: str  # start | progress | end | error
    adapter: str
    percent: Optional[float] = None
    message: str = ""


ProgressCallback = Callable[[ProgressEvent], None]


def log_progress(event: ProgressEvent) -> None:
    if event.kind == "error":
        logger.error("[%s] %s", event.adapter, event.message)
    elif event.kind == "progress" and event.percent is not None:
        logger.info("[%s] Processing: %d%% complete", event.adapter, round(event.percent))
    else:
        logger.info("[%s] %s %s", event.adapter, event.kind, event.message)


class ConverterAdapter(ABC):
    name: str = ""
    categories: Tuple[str, ...] = ()

    def __init__(self, registry: FormatRegistry) -> None:
        self._registry = registry

    @abstractmethod
    async def convert(
        self, payload: ConversionInput, *, progress: ProgressCallback | None = None
    ) -> ConversionOutcome:
        """Convert ``payload.input_path`` into ``payload.output_path``."""

    @abstractmethod
    def supported_targets(self) -> FrozenSet[str]:
        """Every target format this adapter has an encoder for."""

    def merged_options(self, category: str, target: str, overrides: Mapping[str, Any] | None) -> Dict[str, Any]:
        options = self._registry.default_options_of(category, target)
        options.update({k: v for k, v in (overrides or {}).items() if v is not None})
        return options

    def describe(self) -> Dict[str, Any]:
        return {
            "adapter": self.name,
            "categories": list(self.categories),
            "targets": sorted(self.supported_targets()),
        }

    @staticmethod
    def _emit(progress: ProgressCallback | None, event: ProgressEvent) -> None:
        (progress or log_progress)(event)

    @staticmethod
    def _outcome(
        payload: ConversionInput,
        started: float,
        options: Dict[str, Any],
        metadata: Dict[str, Any] | None = None,
    ) -> ConversionOutcome:
        return ConversionOutcome(
            output_path=payload.output_path,
            size_bytes=payload.output_path.stat().st_size,
            elapsed_ms=int((time.monotonic() - started) * 1000),
            options=options,
            metadata=metadata or {},
        )
