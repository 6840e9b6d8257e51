"""Document adapter: office conversion service first, LibreOffice CLI as fallback."""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any, Dict, FrozenSet, Mapping, Optional, Sequence, Tuple

from unoserver.client import UnoClient

from ..errors import DocumentConversionFailed, UnsupportedFormat
from ..formats import DOCUMENT, FormatRegistry
from ..monitoring import tcp_unreachable_reason
from .base import ConversionInput, ConversionOutcome, ConverterAdapter, ProgressCallback, ProgressEvent

logger = logging.getLogger(__name__)

# target format -> LibreOffice "--convert-to" argument (extension[:filter])
CONVERT_TARGETS: Mapping[str, str] = {
    "pdf": "pdf",
    "docx": "docx",
    "txt": "txt:Text",
    "odt": "odt",
    "rtf": "rtf",
    "html": "html",
    "pptx": "pptx",
    "xlsx": "xlsx",
}


def split_convert_target(target: str) -> Tuple[str, Optional[str]]:
    spec = CONVERT_TARGETS[target]
    extension, _, filter_name = spec.partition(":")
    return extension, filter_name or None


@dataclass(frozen=True)
class StrategyResult:
    strategy: str
    ok: bool
    error: str = ""
    fallback: bool = False


class DocumentStrategy(ABC):
    name: str = ""

    @abstractmethod
    async def run(self, payload: ConversionInput, target: str) -> StrategyResult:
        """Write ``payload.output_path`` or report why not."""


class OfficeServiceStrategy(DocumentStrategy):
    """Converts in memory through a running unoserver instance.

    An unreachable service is reported with ``fallback=True`` so the next
    strategy gets a chance; a conversion error reported by the service is not.
    """

    name = "office-service"

    def __init__(self, host: str, port: int, *, connect_timeout: float = 2.0) -> None:
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout

    async def run(self, payload: ConversionInput, target: str) -> StrategyResult:
        reason = await tcp_unreachable_reason(self._host, self._port, self._connect_timeout)
        if reason:
            return StrategyResult(self.name, False, f"office service unreachable ({reason})", fallback=True)

        extension, filter_name = split_convert_target(target)
        try:
            data = await asyncio.to_thread(payload.input_path.read_bytes)
            result = await asyncio.to_thread(self._convert, data, extension, filter_name)
        except ConnectionError as exc:
            return StrategyResult(self.name, False, f"office service connection lost: {exc}", fallback=True)
        except Exception as exc:  # xmlrpc faults carry the office-side error
            return StrategyResult(self.name, False, f"office service error: {exc}")

        if not result:
            return StrategyResult(self.name, False, "office service returned an empty document")
        await asyncio.to_thread(payload.output_path.write_bytes, result)
        return StrategyResult(self.name, True)

    def _convert(self, data: bytes, extension: str, filter_name: Optional[str]) -> bytes:
        client = UnoClient(server=self._host, port=str(self._port))
        return client.convert(indata=data, convert_to=extension, filtername=filter_name)


class OfficeCliStrategy(DocumentStrategy):
    """Runs ``soffice --headless --convert-to`` in a private scratch directory."""

    name = "office-cli"

    def __init__(self, soffice_path: str = "soffice", *, scratch_dir: Path | None = None) -> None:
        self._soffice = soffice_path
        self._scratch_dir = scratch_dir

    async def run(self, payload: ConversionInput, target: str) -> StrategyResult:
        extension, _ = split_convert_target(target)
        input_path = payload.input_path
        if self._scratch_dir is not None:
            self._scratch_dir.mkdir(parents=True, exist_ok=True)

        with TemporaryDirectory(prefix="soffice-", dir=self._scratch_dir) as tmpdir:
            tmpdir_path = Path(tmpdir)
            profile = tmpdir_path / "profile"
            outdir = tmpdir_path / "out"
            outdir.mkdir()
            cmd = [
                self._soffice,
                f"-env:UserInstallation={profile.as_uri()}",
                "--headless",
                "--convert-to",
                CONVERT_TARGETS[target],
                "--outdir",
                str(outdir),
                str(input_path),
            ]
            logger.info("Executing LibreOffice CLI: %s", " ".join(cmd))
            try:
                process = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as exc:
                return StrategyResult(self.name, False, f"{self._soffice} could not be started: {exc}")

            try:
                _, stderr = await process.communicate()
            except asyncio.CancelledError:
                process.kill()
                await process.wait()
                raise

            if process.returncode != 0:
                message = stderr.decode("utf-8", "replace").strip()
                return StrategyResult(self.name, False, f"soffice exited with {process.returncode}: {message}")

            output_candidate = outdir / f"{input_path.stem}.{extension}"
            if not output_candidate.exists():
                return StrategyResult(self.name, False, "LibreOffice conversion did not produce output")
            await asyncio.to_thread(shutil.move, str(output_candidate), str(payload.output_path))

        return StrategyResult(self.name, True)


class DocumentAdapter(ConverterAdapter):
    name = "document"
    categories = (DOCUMENT,)

    def __init__(self, registry: FormatRegistry, strategies: Sequence[DocumentStrategy]) -> None:
        super().__init__(registry)
        if not strategies:
            raise ValueError("DocumentAdapter requires at least one strategy")
        self._strategies = tuple(strategies)

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["strategies"] = [strategy.name for strategy in self._strategies]
        return info

    def supported_targets(self) -> FrozenSet[str]:
        return frozenset(CONVERT_TARGETS)

    async def convert(
        self, payload: ConversionInput, *, progress: ProgressCallback | None = None
    ) -> ConversionOutcome:
        target = payload.target_format.lower()
        if target not in CONVERT_TARGETS:
            raise UnsupportedFormat(f"Unsupported document format: {target}")

        options = self.merged_options(DOCUMENT, target, payload.options)
        started = time.monotonic()
        self._emit(progress, ProgressEvent("start", self.name, message=f"{payload.input_path.name} -> {target}"))

        attempts = []
        for strategy in self._strategies:
            result = await strategy.run(payload, target)
            attempts.append(result)
            if result.ok:
                break
            logger.warning("Document strategy %s failed: %s", result.strategy, result.error)
            if not result.fallback:
                break

        if not attempts[-1].ok or not payload.output_path.exists():
            summary = "; ".join(f"{r.strategy}: {r.error or 'no output'}" for r in attempts)
            self._emit(progress, ProgressEvent("error", self.name, message=summary))
            raise DocumentConversionFailed(f"Document conversion failed: {attempts[-1].error or 'no output'}",
                                           details=summary)

        self._emit(progress, ProgressEvent("end", self.name, percent=100.0, message=attempts[-1].strategy))
        return self._outcome(payload, started, options, {"strategy": attempts[-1].strategy})
