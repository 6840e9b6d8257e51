"""Shared pytest fixtures for the conversion service tests."""

from __future__ import annotations

import asyncio
import io
import time
from pathlib import Path
from typing import FrozenSet, List

import pytest
from PIL import Image

from file_converter.adapters import AdapterRegistry, ConversionInput, ConversionOutcome, ConverterAdapter
from file_converter.cleanup import CleanupService
from file_converter.config import (
    CleanupSettings,
    DependencySettings,
    DirectorySettings,
    LoggingSettings,
    MonitoringSettings,
    RateLimitSettings,
    Settings,
)
from file_converter.errors import ConversionFailed
from file_converter.formats import AUDIO, DOCUMENT, IMAGE, VIDEO, FormatRegistry, build_default_registry
from file_converter.orchestrator import ConversionOrchestrator
from file_converter.validation import ConversionValidator
from file_converter.workspace import Workspace


class FakeAdapter(ConverterAdapter):
    """Writes a small marker file instead of converting; can be told to fail or stall."""

    def __init__(
        self,
        registry: FormatRegistry,
        *,
        name: str,
        categories: tuple[str, ...],
        output_bytes: bytes = b"converted",
    ) -> None:
        super().__init__(registry)
        self.name = name
        self.categories = categories
        self.output_bytes = output_bytes
        self.calls: List[ConversionInput] = []
        self.fail_on: set[str] = set()
        self.delay_sec = 0.0

    def supported_targets(self) -> FrozenSet[str]:
        targets: set[str] = set()
        for category in (IMAGE, AUDIO, VIDEO, DOCUMENT):
            targets |= self._registry.formats_of(category)
        return frozenset(targets)

    async def convert(self, payload: ConversionInput, *, progress=None) -> ConversionOutcome:
        self.calls.append(payload)
        started = time.monotonic()
        if self.delay_sec:
            await asyncio.sleep(self.delay_sec)
        if payload.input_path.name.endswith(tuple(self.fail_on)):
            raise ConversionFailed("Simulated conversion failure")
        payload.output_path.parent.mkdir(parents=True, exist_ok=True)
        payload.output_path.write_bytes(self.output_bytes)
        return self._outcome(payload, started, dict(payload.options), {"fake": True})


class FakeAdapters:
    def __init__(self, registry: FormatRegistry) -> None:
        self.image = FakeAdapter(registry, name="image", categories=(IMAGE,))
        self.media = FakeAdapter(registry, name="media", categories=(AUDIO, VIDEO))
        self.document = FakeAdapter(registry, name="document", categories=(DOCUMENT,))
        self.registry = AdapterRegistry()
        for adapter in (self.image, self.media, self.document):
            self.registry.register(adapter)

    @property
    def total_calls(self) -> int:
        return len(self.image.calls) + len(self.media.calls) + len(self.document.calls)


def jpeg_bytes(width: int = 64, height: int = 64, *, noise: bool = False) -> bytes:
    if noise:
        img = Image.effect_noise((width, height), 64).convert("RGB")
    else:
        img = Image.new("RGB", (width, height), (200, 40, 90))
    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=95)
    return buffer.getvalue()


def files_in(directory: Path) -> List[Path]:
    if not directory.exists():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file())


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        service_name="file-conversion-service-test",
        environment="test",
        directories=DirectorySettings(
            upload_dir=str(tmp_path / "uploads"),
            temp_dir=str(tmp_path / "temp"),
            output_dir=str(tmp_path / "output"),
        ),
        cleanup=CleanupSettings(max_attempts=3, retry_delay_sec=0),
        dependencies=DependencySettings(check_on_startup=False, probe_timeout_sec=2.0),
        rate_limit=RateLimitSettings(enabled=False),
        logging=LoggingSettings(level="WARNING", log_dir=str(tmp_path / "logs")),
        monitoring=MonitoringSettings(metrics_enabled=False),
    )


@pytest.fixture()
def formats() -> FormatRegistry:
    return build_default_registry()


@pytest.fixture()
def fake_adapters(formats: FormatRegistry) -> FakeAdapters:
    return FakeAdapters(formats)


@pytest.fixture()
def workspace(test_settings: Settings) -> Workspace:
    ws = Workspace(test_settings.directories)
    ws.ensure_directories()
    return ws


@pytest.fixture()
def orchestrator(formats: FormatRegistry, fake_adapters: FakeAdapters, workspace: Workspace) -> ConversionOrchestrator:
    return ConversionOrchestrator(
        formats,
        ConversionValidator(formats),
        fake_adapters.registry,
        workspace,
        CleanupService(retry_delay_sec=0),
        timeout_sec=5,
    )

