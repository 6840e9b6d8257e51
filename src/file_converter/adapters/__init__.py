"""Converter adapter exports and the default wiring."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from .base import (
	ConversionInput,
	ConversionOutcome,
	ConverterAdapter,
	ProgressCallback,
	ProgressEvent,
)
from .document import DocumentAdapter, OfficeCliStrategy, OfficeServiceStrategy
from .image import ImageAdapter
from .media import MediaAdapter
from .registry import AdapterConfigurationError, AdapterRegistry

if TYPE_CHECKING:  # pragma: no cover - import guard for type checkers
	from file_converter.config import Settings
	from file_converter.formats import FormatRegistry


def build_default_adapters(settings: "Settings", formats: "FormatRegistry") -> AdapterRegistry:
	"""Wire the Pillow, FFmpeg and LibreOffice adapters from settings."""

	conv = settings.conversion
	registry = AdapterRegistry()
	registry.register(ImageAdapter(formats))
	registry.register(MediaAdapter(formats, ffmpeg_path=conv.ffmpeg_path, ffprobe_path=conv.ffprobe_path))
	registry.register(
		DocumentAdapter(
			formats,
			[
				OfficeServiceStrategy(conv.office_server_host, conv.office_server_port),
				OfficeCliStrategy(conv.soffice_path, scratch_dir=Path(settings.directories.temp_dir)),
			],
		)
	)
	return registry


__all__ = [
	"AdapterConfigurationError",
	"AdapterRegistry",
	"ConversionInput",
	"ConversionOutcome",
	"ConverterAdapter",
	"DocumentAdapter",
	"ImageAdapter",
	"MediaAdapter",
	"OfficeCliStrategy",
	"OfficeServiceStrategy",
	"ProgressCallback",
	"ProgressEvent",
	"build_default_adapters",
]
