"""Image adapter backed by Pillow."""

from __future__ import annotations

import asyncio
import io
import time
from pathlib import Path
from typing import IO, Any, Callable, Dict, FrozenSet, Mapping, Tuple

from PIL import Image, UnidentifiedImageError

from ..errors import ImageConversionFailed, UnsupportedFormat
from ..formats import IMAGE
from .base import ConversionInput, ConversionOutcome, ConverterAdapter, ProgressCallback, ProgressEvent

Encoder = Callable[[Image.Image, IO[bytes], Dict[str, Any]], None]

_OPAQUE_MODES = ("1", "L", "RGB")


def _flatten(img: Image.Image, allowed: tuple[str, ...] = _OPAQUE_MODES) -> Image.Image:
    return img if img.mode in allowed else img.convert("RGB")


def _encode_jpeg(img: Image.Image, fp: IO[bytes], options: Dict[str, Any]) -> None:
    _flatten(img).save(
        fp,
        format="JPEG",
        quality=int(options.get("quality", 80)),
        progressive=bool(options.get("progressive", False)),
    )


def _encode_png(img: Image.Image, fp: IO[bytes], options: Dict[str, Any]) -> None:
    img.save(fp, format="PNG", compress_level=int(options.get("compressionLevel", 6)))


def _encode_webp(img: Image.Image, fp: IO[bytes], options: Dict[str, Any]) -> None:
    img.save(
        fp,
        format="WEBP",
        quality=int(options.get("quality", 80)),
        lossless=bool(options.get("lossless", False)),
    )


def _encode_avif(img: Image.Image, fp: IO[bytes], options: Dict[str, Any]) -> None:
    quality = 100 if options.get("lossless") else int(options.get("quality", 50))
    img.save(fp, format="AVIF", quality=quality)


def _encode_tiff(img: Image.Image, fp: IO[bytes], options: Dict[str, Any]) -> None:
    img.save(fp, format="TIFF", compression=options.get("compression", "tiff_lzw"))


def _encode_bmp(img: Image.Image, fp: IO[bytes], options: Dict[str, Any]) -> None:
    _flatten(img, ("1", "L", "P", "RGB")).save(fp, format="BMP")


def _encode_gif(img: Image.Image, fp: IO[bytes], options: Dict[str, Any]) -> None:
    img.save(fp, format="GIF")


def _encode_pdf(img: Image.Image, fp: IO[bytes], options: Dict[str, Any]) -> None:
    _flatten(img).save(fp, format="PDF", resolution=float(options.get("resolution", 72.0)))


ENCODERS: Mapping[str, Encoder] = {
    "webp": _encode_webp,
    "jpeg": _encode_jpeg,
    "jpg": _encode_jpeg,
    "png": _encode_png,
    "avif": _encode_avif,
    "tiff": _encode_tiff,
    "bmp": _encode_bmp,
    "gif": _encode_gif,
    "pdf": _encode_pdf,
}


class ImageAdapter(ConverterAdapter):
    name = "image"
    categories = (IMAGE,)

    def supported_targets(self) -> FrozenSet[str]:
        return frozenset(ENCODERS)

    async def convert(
        self, payload: ConversionInput, *, progress: ProgressCallback | None = None
    ) -> ConversionOutcome:
        target = payload.target_format.lower()
        encoder = ENCODERS.get(target)
        if encoder is None:
            raise UnsupportedFormat(f"Unsupported image format: {target}")

        options = self.merged_options(IMAGE, target, payload.options)
        started = time.monotonic()
        self._emit(
            progress,
            ProgressEvent("start", self.name, message=f"{payload.input_path.name} -> {target}"),
        )
        try:
            metadata, encoded = await asyncio.to_thread(self._run, payload.input_path, encoder, options)
            # The worker thread outlives a cancelled await, so only this coroutine touches output_path.
            payload.output_path.write_bytes(encoded)
        except (OSError, UnidentifiedImageError, ValueError) as exc:
            self._emit(progress, ProgressEvent("error", self.name, message=str(exc)))
            raise ImageConversionFailed(f"Image conversion failed: {exc}") from exc
        self._emit(progress, ProgressEvent("end", self.name, percent=100.0))
        return self._outcome(payload, started, options, {"originalMetadata": metadata})

    @staticmethod
    def _run(input_path: Path, encoder: Encoder, options: Dict[str, Any]) -> Tuple[Dict[str, Any], bytes]:
        buffer = io.BytesIO()
        with Image.open(input_path) as img:
            metadata = {
                "format": img.format,
                "width": img.width,
                "height": img.height,
                "mode": img.mode,
                "frames": getattr(img, "n_frames", 1),
            }
            encoder(img, buffer, options)
        return metadata, buffer.getvalue()
