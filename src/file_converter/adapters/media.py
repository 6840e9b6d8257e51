"""Audio/video adapter driving the FFmpeg CLI asynchronously."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from ..errors import MediaConversionFailed
from ..formats import AUDIO, VIDEO, FormatRegistry
from .base import ConversionInput, ConversionOutcome, ConverterAdapter, ProgressCallback, ProgressEvent

logger = logging.getLogger(__name__)

AUDIO_CODECS: Mapping[str, str] = {
    "mp3": "libmp3lame",
    "aac": "aac",
    "m4a": "aac",
    "ogg": "libvorbis",
    "flac": "flac",
    "wav": "pcm_s16le",
}

DEFAULT_VIDEO_CODECS: Tuple[str, str] = ("libx264", "aac")

VIDEO_CODECS: Mapping[str, Tuple[str, str]] = {
    "mp4": ("libx264", "aac"),
    "mov": ("libx264", "aac"),
    "webm": ("libvpx-vp9", "libvorbis"),
    "mkv": DEFAULT_VIDEO_CODECS,
    "avi": DEFAULT_VIDEO_CODECS,
    "flv": DEFAULT_VIDEO_CODECS,
}

STDERR_TAIL_LINES = 20


def build_audio_args(options: Mapping[str, Any], target: str) -> List[str]:
    args = ["-vn"]
    if options.get("audioBitrate"):
        args += ["-b:a", str(options["audioBitrate"])]
    if options.get("audioChannels"):
        args += ["-ac", str(options["audioChannels"])]
    codec = AUDIO_CODECS.get(target)
    if codec:
        args += ["-c:a", codec]
    return args


def build_video_args(options: Mapping[str, Any], target: str) -> List[str]:
    args: List[str] = []
    if options.get("videoBitrate"):
        args += ["-b:v", str(options["videoBitrate"])]
    if options.get("audioBitrate"):
        args += ["-b:a", str(options["audioBitrate"])]
    if options.get("preset"):
        args += ["-preset", str(options["preset"])]
    video_codec, audio_codec = VIDEO_CODECS.get(target, DEFAULT_VIDEO_CODECS)
    args += ["-c:v", video_codec, "-c:a", audio_codec]
    return args


class MediaAdapter(ConverterAdapter):
    name = "media"
    categories = (AUDIO, VIDEO)

    def __init__(self, registry: FormatRegistry, *, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe") -> None:
        super().__init__(registry)
        self._ffmpeg = ffmpeg_path
        self._ffprobe = ffprobe_path

    def supported_targets(self) -> FrozenSet[str]:
        return frozenset(AUDIO_CODECS) | frozenset(VIDEO_CODECS)

    def build_command(self, payload: ConversionInput) -> Tuple[List[str], Dict[str, Any]]:
        target = payload.target_format.lower()
        if target in self._registry.formats_of(AUDIO):
            options = self.merged_options(AUDIO, target, payload.options)
            stream_args = build_audio_args(options, target)
        else:
            options = self.merged_options(VIDEO, target, payload.options)
            stream_args = build_video_args(options, target)

        cmd = [
            self._ffmpeg,
            "-y",
            "-hide_banner",
            "-nostats",
            "-i",
            str(payload.input_path),
            *stream_args,
            "-progress",
            "pipe:1",
            str(payload.output_path),
        ]
        return cmd, options

    async def convert(
        self, payload: ConversionInput, *, progress: ProgressCallback | None = None
    ) -> ConversionOutcome:
        cmd, options = self.build_command(payload)
        started = time.monotonic()
        duration = await self.probe_duration(str(payload.input_path))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            self._emit(progress, ProgressEvent("error", self.name, message=str(exc)))
            raise MediaConversionFailed(f"Media conversion failed: {self._ffmpeg} could not be started") from exc

        self._emit(progress, ProgressEvent("start", self.name, message=" ".join(cmd)))
        try:
            _, stderr = await asyncio.gather(
                self._follow_progress(process.stdout, duration, progress),
                process.stderr.read(),
            )
            returncode = await process.wait()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        if returncode != 0:
            tail = "\n".join(stderr.decode("utf-8", "replace").strip().splitlines()[-STDERR_TAIL_LINES:])
            self._emit(progress, ProgressEvent("error", self.name, message=tail))
            raise MediaConversionFailed(
                f"Media conversion failed: ffmpeg exited with status {returncode}",
                details=tail,
            )
        if not payload.output_path.exists():
            raise MediaConversionFailed("Media conversion failed: ffmpeg produced no output")

        self._emit(progress, ProgressEvent("end", self.name, percent=100.0, message="Media conversion completed"))
        return self._outcome(payload, started, options, {"durationSeconds": duration})

    async def probe_duration(self, input_path: str) -> Optional[float]:
        """Best-effort container duration via ffprobe; None when unknown."""
        try:
            process = await asyncio.create_subprocess_exec(
                self._ffprobe,
                "-v",
                "error",
                "-show_entries",
                "format=duration",
                "-of",
                "default=noprint_wrappers=1:nokey=1",
                input_path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError:
            logger.warning("ffprobe unavailable; progress percentages disabled")
            return None
        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise
        try:
            value = float(stdout.decode("utf-8", "replace").strip())
        except ValueError:
            return None
        return value if value > 0 else None

    async def _follow_progress(
        self,
        stream: asyncio.StreamReader | None,
        duration: Optional[float],
        progress: ProgressCallback | None,
    ) -> None:
        if stream is None:
            return
        async for raw in stream:
            key, _, value = raw.decode("utf-8", "replace").strip().partition("=")
            if key != "out_time_us" or not duration:
                continue
            try:
                seconds = int(value) / 1_000_000
            except ValueError:
                continue
            percent = min(100.0, seconds / duration * 100)
            self._emit(progress, ProgressEvent("progress", self.name, percent=percent))
