"""Tests for the conversion orchestrator state machine."""

from __future__ import annotations

import asyncio
import time

import pytest

from file_converter.adapters import AdapterRegistry, ImageAdapter
from file_converter.adapters.image import ENCODERS
from file_converter.cleanup import CleanupService
from file_converter.errors import BadRequest, ConversionFailed, ConversionTimeout, UnsupportedConversion
from file_converter.orchestrator import (
    ConversionJob,
    ConversionOrchestrator,
    ConversionRequest,
    JobState,
    SourceFile,
    compression_ratio,
)
from file_converter.validation import ConversionValidator

from .conftest import FakeAdapter, files_in, jpeg_bytes


def _upload(workspace, name: str, data: bytes = b"x" * 1000) -> SourceFile:
    path = workspace.upload_path(name)
    path.write_bytes(data)
    return SourceFile(path=path, original_name=name, size_bytes=len(data))


def test_compression_ratio():
    assert compression_ratio(1000, 250) == 75
    assert compression_ratio(1000, 1500) == -50
    assert compression_ratio(0, 10) == 0


def test_job_rejects_illegal_transitions(workspace):
    job = ConversionJob(ConversionRequest(source=_upload(workspace, "a.png"), target_format="jpg"))

    with pytest.raises(RuntimeError):
        job.advance(JobState.COMPLETED)
    job.advance(JobState.VALIDATED)
    job.advance(JobState.FAILED)
    with pytest.raises(RuntimeError):
        job.advance(JobState.DISPATCHED)


def test_convert_dispatches_by_source_category(orchestrator, fake_adapters, workspace):
    source = _upload(workspace, "clip.MP4")

    result = asyncio.run(orchestrator.convert(ConversionRequest(source=source, target_format="MP3", options={"quality": 80})))

    assert len(fake_adapters.media.calls) == 1
    assert fake_adapters.media.calls[0].target_format == "mp3"
    assert result.download_name == "clip-converted.mp3"
    assert result.outcome.output_path.exists()
    assert result.cleanup_paths == [source.path]
    assert result.metadata == {
        "originalSize": 1000,
        "convertedSize": len(b"converted"),
        "processingTime": result.metadata["processingTime"],
        "format": "mp3",
        "compressionRatio": 99,
        "quality": 80,
    }


def test_image_to_pdf_goes_to_image_adapter(orchestrator, fake_adapters, workspace):
    asyncio.run(orchestrator.convert(ConversionRequest(source=_upload(workspace, "scan.png"), target_format="pdf")))

    assert len(fake_adapters.image.calls) == 1
    assert not fake_adapters.document.calls


def test_unsupported_pair_never_reaches_an_adapter(orchestrator, fake_adapters, workspace):
    source = _upload(workspace, "notes.xyz")

    with pytest.raises(UnsupportedConversion) as exc:
        asyncio.run(orchestrator.convert(ConversionRequest(source=source, target_format="mp3")))

    assert exc.value.message == "Unsupported format"
    assert "image" in exc.value.extra["supportedFormats"]
    assert fake_adapters.total_calls == 0
    assert not source.path.exists()


def test_missing_target_is_bad_request(orchestrator, workspace):
    source = _upload(workspace, "a.png")

    with pytest.raises(BadRequest):
        asyncio.run(orchestrator.convert(ConversionRequest(source=source, target_format=" ")))

    assert not source.path.exists()


def test_adapter_failure_removes_source_and_partial_output(orchestrator, fake_adapters, workspace):
    fake_adapters.document.fail_on.add("report.docx")
    source = _upload(workspace, "report.docx")

    with pytest.raises(ConversionFailed):
        asyncio.run(orchestrator.convert(ConversionRequest(source=source, target_format="pdf")))

    assert files_in(workspace.upload_dir) == []
    assert files_in(workspace.output_dir) == []


def test_timeout_is_reported_and_cleaned(orchestrator, fake_adapters, workspace):
    orchestrator._timeout = 0.01
    fake_adapters.image.delay_sec = 1
    source = _upload(workspace, "slow.png")

    with pytest.raises(ConversionTimeout):
        asyncio.run(orchestrator.convert(ConversionRequest(source=source, target_format="webp")))

    assert files_in(workspace.upload_dir) == []


def test_batch_isolates_failures(orchestrator, fake_adapters, workspace):
    fake_adapters.image.fail_on.add("b.png")
    requests = [
        ConversionRequest(source=_upload(workspace, name), target_format="webp")
        for name in ("a.png", "b.png", "c.jpg")
    ]

    report = asyncio.run(orchestrator.convert_batch(requests, "webp"))

    assert report.total_count == 3
    assert report.success_count == 2
    failed = report.results[1]
    assert failed.filename == "b.png"
    assert not failed.success
    assert failed.error == "Simulated conversion failure"
    ok = report.results[0]
    assert ok.converted_name == "a-converted.webp"
    assert ok.download_path.startswith("/download/")
    assert ok.download_path.endswith("-a-converted.webp")
    # outputs stay for download, every upload is scheduled for removal
    assert len(files_in(workspace.output_dir)) == 2
    assert {request.source.path for request in requests} <= set(report.cleanup_paths)


def test_batch_without_target_cleans_every_upload(orchestrator, workspace):
    requests = [ConversionRequest(source=_upload(workspace, f"{i}.png"), target_format="") for i in range(3)]

    with pytest.raises(BadRequest):
        asyncio.run(orchestrator.convert_batch(requests, ""))

    assert files_in(workspace.upload_dir) == []


def test_image_timeout_leaves_no_output_behind(formats, workspace, monkeypatch):
    def _slow_webp(img, fp, options):
        time.sleep(0.3)
        img.save(fp, format="WEBP")

    monkeypatch.setitem(ENCODERS, "webp", _slow_webp)
    registry = AdapterRegistry()
    registry.register(ImageAdapter(formats))
    registry.register(FakeAdapter(formats, name="media", categories=("audio", "video")))
    registry.register(FakeAdapter(formats, name="document", categories=("document",)))
    orchestrator = ConversionOrchestrator(
        formats,
        ConversionValidator(formats),
        registry,
        workspace,
        CleanupService(retry_delay_sec=0),
        timeout_sec=0.05,
    )
    source = _upload(workspace, "a.jpg", jpeg_bytes())

    with pytest.raises(ConversionTimeout):
        asyncio.run(orchestrator.convert(ConversionRequest(source=source, target_format="webp")))

    time.sleep(0.5)
    assert files_in(workspace.upload_dir) == []
    assert files_in(workspace.output_dir) == []
