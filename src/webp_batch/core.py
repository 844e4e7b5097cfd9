from __future__ import annotations

import concurrent.futures
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from .config import AppConfig
from .discovery import find_images
from .encoders import (
    Encoder,
    EncoderAvailability,
    ExternalEncoder,
    build_external,
    build_fallback,
)
from .errors import ConversionError, DiscoveryError, EncodeError
from .logging import RunLogEntry, RunLogger
from .models import BatchReport, ConversionOptions, ConversionOutcome
from .paths import is_webp, resolve_output_path
from .report import ReportAggregator
from .utils import generate_run_id

ProgressCallback = Callable[[ConversionOutcome, int, int], None]


@dataclass(slots=True)
class _TaskState:
    source: Path
    encoder: Encoder
    started: float
    original_size: int = 0
    output_path: Path | None = None


class WebPConverter:
    """Converts PNG/JPEG trees to WebP with a bounded number of parallel tasks.

    The external encoder is probed at most once per instance; the answer decides
    the backend for every file converted afterwards.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        external: ExternalEncoder | None = None,
        fallback: Encoder | None = None,
    ) -> None:
        self._config = config or AppConfig()
        self._external = external or build_external(self._config.encoder)
        self._fallback = fallback or build_fallback(self._config.encoder)
        self._availability = EncoderAvailability.UNKNOWN

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def availability(self) -> EncoderAvailability:
        return self._availability

    def probe_availability(self) -> bool:
        if self._availability is EncoderAvailability.UNKNOWN:
            if self._config.encoder.prefer == "pillow":
                available = False
            else:
                available = self._external.probe()
            self._availability = (
                EncoderAvailability.AVAILABLE if available else EncoderAvailability.UNAVAILABLE
            )
        return self._availability is EncoderAvailability.AVAILABLE

    def select_encoder(self) -> Encoder:
        if self.probe_availability():
            return self._external
        if self._config.encoder.prefer == "cwebp":
            raise ConversionError(
                "ENCODER_UNAVAILABLE",
                f"cwebp is required but could not be run ({self._config.encoder.cwebp_path})",
            )
        return self._fallback

    def find_images(self, source_dir: Path) -> list[Path]:
        return find_images(source_dir)

    def convert_file(
        self,
        path: Path,
        options: ConversionOptions,
        *,
        encoder: Encoder | None = None,
    ) -> ConversionOutcome:
        path = Path(path)
        started = time.perf_counter()
        try:
            state = _TaskState(source=path, encoder=encoder or self.select_encoder(), started=started)
        except ConversionError as exc:
            return self._failure(path, None, started, exc.code, str(exc))
        try:
            return self._convert_internal(state, options)
        except ConversionError as exc:
            return self._failure(path, state, started, exc.code, str(exc))
        except OSError as exc:
            return self._failure(path, state, started, "IO_ERROR", str(exc))

    def _convert_internal(self, state: _TaskState, options: ConversionOptions) -> ConversionOutcome:
        state.original_size = self._stat_source(state.source)
        state.output_path = self._resolve_output(state.source, options)
        state.encoder.encode(state.source, state.output_path, options)
        if options.overwrite and not is_webp(state.source):
            self._remove_original(state.source)
        output_size = self._stat_output(state.output_path)
        return ConversionOutcome(
            source=state.source,
            success=True,
            original_size=state.original_size,
            output_size=output_size,
            output_path=state.output_path,
            encoder=state.encoder.name,
            elapsed_ms=(time.perf_counter() - state.started) * 1000,
        )

    def _stat_source(self, path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError as exc:
            raise ConversionError("NOT_FOUND", f"Source file does not exist: {path}") from exc
        except OSError as exc:
            raise ConversionError("STAT_FAILED", f"Cannot read {path}: {exc}") from exc

    def _resolve_output(self, path: Path, options: ConversionOptions) -> Path:
        try:
            return resolve_output_path(path, options)
        except OSError as exc:
            raise ConversionError("OUTPUT_DIR", f"Cannot prepare output directory: {exc}") from exc

    def _remove_original(self, path: Path) -> None:
        # The WebP file is already in place when this fails; both files remain.
        try:
            path.unlink()
        except OSError as exc:
            raise ConversionError("DELETE_FAILED", f"Converted but could not remove original: {exc}") from exc

    def _stat_output(self, path: Path) -> int:
        try:
            return path.stat().st_size
        except OSError as exc:
            raise ConversionError("STAT_FAILED", f"Cannot read output {path}: {exc}") from exc

    def _failure(
        self,
        path: Path,
        state: _TaskState | None,
        started: float,
        code: str,
        message: str,
    ) -> ConversionOutcome:
        return ConversionOutcome(
            source=path,
            success=False,
            output_path=state.output_path if state else None,
            error=message,
            error_code=code,
            encoder=state.encoder.name if state else None,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )

    def batch_convert(
        self,
        options: ConversionOptions,
        *,
        progress: ProgressCallback | None = None,
        discovered: Callable[[int], None] | None = None,
    ) -> BatchReport:
        """Convert every image under ``options.src``.

        Discovery failures, an unwritable run log and a missing required encoder
        abort the batch before any file is touched. Every other problem is
        captured per file and reported in ``BatchReport.errors``.
        """

        images = self.find_images(options.src)
        total = len(images)
        if discovered is not None:
            discovered(total)
        run_logger = self._run_logger()
        encoder = self.select_encoder()
        batch_id = generate_run_id("batch")
        aggregator = ReportAggregator(encoder=encoder.name, batch_id=batch_id)

        def consume(outcome: ConversionOutcome) -> None:
            nonlocal run_logger
            aggregator.record(outcome)
            if run_logger is not None:
                try:
                    run_logger.append(RunLogEntry.from_outcome(batch_id, outcome))
                except OSError as exc:
                    aggregator.warn(f"Run log disabled after write failure: {exc}")
                    run_logger = None
            if progress is not None:
                progress(outcome, aggregator.recorded, total)

        if images:
            with concurrent.futures.ThreadPoolExecutor(max_workers=options.threads) as executor:
                futures = [
                    executor.submit(self.convert_file, path, options, encoder=encoder)
                    for path in images
                ]
                try:
                    for future in concurrent.futures.as_completed(futures):
                        consume(future.result())
                except BaseException:
                    # Queued files are left untouched when the caller bails out.
                    for future in futures:
                        future.cancel()
                    raise

        return aggregator.finalize()

    def _run_logger(self) -> RunLogger | None:
        log_file = self._config.runtime.log_file
        if log_file is None:
            return None
        run_logger = RunLogger(Path(log_file))
        try:
            run_logger.ensure_writable()
        except OSError as exc:
            raise ConversionError("LOG_FILE", f"Cannot write run log {log_file}: {exc}") from exc
        return run_logger


__all__ = [
    "ConversionError",
    "DiscoveryError",
    "EncodeError",
    "ProgressCallback",
    "WebPConverter",
]
