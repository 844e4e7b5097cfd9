from __future__ import annotations

import json
import math

from .models import BatchReport, ConversionOutcome, FileError
from .utils import bytes_to_kb


def compute_savings(original_kb: float, webp_kb: float) -> int:
    """Signed percentage saved, rounded half up; 0 when nothing was measured."""

    if original_kb <= 0:
        return 0
    return math.floor((original_kb - webp_kb) / original_kb * 100 + 0.5)


class ReportAggregator:
    """Accumulates outcomes for one batch.

    ``record`` is only called from the thread that drains finished tasks, so the
    counters are never written concurrently.
    """

    def __init__(self, *, encoder: str | None = None, batch_id: str | None = None) -> None:
        self._encoder = encoder
        self._batch_id = batch_id
        self._converted: list[str] = []
        self._skipped: list[str] = []
        self._errors: list[FileError] = []
        self._original_kb = 0.0
        self._webp_kb = 0.0
        self._warnings: list[str] = []

    @property
    def recorded(self) -> int:
        return len(self._converted) + len(self._skipped) + len(self._errors)

    def record(self, outcome: ConversionOutcome) -> None:
        source = str(outcome.source)
        if outcome.success:
            self._converted.append(source)
            self._original_kb += bytes_to_kb(outcome.original_size)
            self._webp_kb += bytes_to_kb(outcome.output_size)
        else:
            self._errors.append(FileError(file=source, error=outcome.error or "Unknown error"))

    def warn(self, message: str) -> None:
        self._warnings.append(message)

    def finalize(self) -> BatchReport:
        return BatchReport(
            converted=tuple(self._converted),
            skipped=tuple(self._skipped),
            errors=tuple(self._errors),
            original_kb=self._original_kb,
            webp_kb=self._webp_kb,
            savings=compute_savings(self._original_kb, self._webp_kb),
            encoder=self._encoder,
            batch_id=self._batch_id,
            warnings=tuple(self._warnings),
        )


def render_text_summary(report: BatchReport) -> str:
    lines = [
        "WebP Batch Conversion Complete!",
        "",
        "Results:",
        f"Converted: {len(report.converted)} files",
        f"Skipped: {len(report.skipped)} files",
        f"Errors: {len(report.errors)} files",
        f"Original size: {round(report.original_kb)} KB",
        f"WebP size: {round(report.webp_kb)} KB",
        f"Space saved: {report.savings}%",
        "",
        "Detailed Report:",
        json.dumps(report.to_dict(), indent=2),
    ]
    return "\n".join(lines)


__all__ = ["ReportAggregator", "compute_savings", "render_text_summary"]
