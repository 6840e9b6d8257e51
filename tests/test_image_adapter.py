"""Tests for the Pillow-backed image adapter."""

from __future__ import annotations

import asyncio

import pytest
from PIL import Image

from file_converter.adapters import ConversionInput, ImageAdapter
from file_converter.errors import ImageConversionFailed, UnsupportedFormat

from .conftest import jpeg_bytes


@pytest.fixture()
def adapter(formats) -> ImageAdapter:
    return ImageAdapter(formats)


@pytest.fixture()
def source_jpeg(tmp_path):
    path = tmp_path / "photo.jpg"
    path.write_bytes(jpeg_bytes(120, 80))
    return path


def _run(adapter, source, output, target, **options):
    payload = ConversionInput(input_path=source, output_path=output, target_format=target, options=options)
    return asyncio.run(adapter.convert(payload, progress=lambda event: None))


@pytest.mark.parametrize("target,pil_format", [("webp", "WEBP"), ("png", "PNG"), ("gif", "GIF"), ("bmp", "BMP")])
def test_converts_jpeg_to_other_image_formats(adapter, source_jpeg, tmp_path, target, pil_format):
    output = tmp_path / f"photo-converted.{target}"

    outcome = _run(adapter, source_jpeg, output, target)

    assert outcome.output_path == output
    assert outcome.size_bytes == output.stat().st_size > 0
    with Image.open(output) as img:
        assert img.format == pil_format
        assert img.size == (120, 80)
    assert outcome.metadata["originalMetadata"]["format"] == "JPEG"
    assert outcome.metadata["originalMetadata"]["width"] == 120


def test_request_quality_overrides_catalog_default(adapter, source_jpeg, tmp_path):
    outcome = _run(adapter, source_jpeg, tmp_path / "q.webp", "webp", quality=35)

    assert outcome.options == {"quality": 35, "lossless": False}


def test_catalog_defaults_apply_without_overrides(adapter, source_jpeg, tmp_path):
    outcome = _run(adapter, source_jpeg, tmp_path / "p.jpeg", "jpeg", quality=None)

    assert outcome.options == {"quality": 80, "progressive": True}


def test_image_to_pdf(adapter, source_jpeg, tmp_path):
    output = tmp_path / "photo-converted.pdf"

    _run(adapter, source_jpeg, output, "pdf")

    assert output.read_bytes().startswith(b"%PDF")


def test_rgba_png_flattens_for_jpeg(adapter, tmp_path):
    source = tmp_path / "alpha.png"
    Image.new("RGBA", (10, 10), (0, 128, 255, 100)).save(source)
    output = tmp_path / "alpha.jpg"

    _run(adapter, source, output, "jpg")

    with Image.open(output) as img:
        assert img.mode == "RGB"


def test_unknown_target_is_rejected(adapter, source_jpeg, tmp_path):
    with pytest.raises(UnsupportedFormat):
        _run(adapter, source_jpeg, tmp_path / "x.svg", "svg")


def test_corrupt_input_raises_image_failure(adapter, tmp_path):
    source = tmp_path / "broken.jpg"
    source.write_bytes(b"not an image")
    events = []
    payload = ConversionInput(input_path=source, output_path=tmp_path / "out.png", target_format="png")

    with pytest.raises(ImageConversionFailed):
        asyncio.run(adapter.convert(payload, progress=events.append))

    assert [event.kind for event in events] == ["start", "error"]


def test_adapter_covers_image_catalog_and_pdf(adapter, formats):
    assert formats.formats_of("image") | {"pdf"} <= adapter.supported_targets()
