"""Domain models for WebP batch conversion."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True, slots=True)
class ConversionOptions:
    """Settings applied uniformly to every file of one batch.

    ``quality`` is ignored when ``lossless`` is set. When both ``flat`` and
    ``overwrite`` are given, ``flat`` decides the output location while
    ``overwrite`` still removes the original after a successful encode.
    """

    src: Path = Path(".")
    quality: int = 75
    lossless: bool = False
    overwrite: bool = False
    threads: int = 1
    preserve_metadata: bool = False
    flat: Path | None = None


@dataclass(frozen=True, slots=True)
class ConversionOutcome:
    """Result of converting one discovered image."""

    source: Path
    success: bool
    original_size: int = 0
    output_size: int = 0
    output_path: Path | None = None
    error: str | None = None
    error_code: str | None = None
    encoder: str | None = None
    elapsed_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class FileError:
    file: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"file": self.file, "error": self.error}


@dataclass(frozen=True, slots=True)
class BatchReport:
    """Finalized aggregate of every outcome in a batch."""

    converted: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    errors: tuple[FileError, ...] = ()
    original_kb: float = 0.0
    webp_kb: float = 0.0
    savings: int = 0
    encoder: str | None = None
    batch_id: str | None = None
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "converted": list(self.converted),
            "skipped": list(self.skipped),
            "errors": [item.to_dict() for item in self.errors],
            "originalKB": self.original_kb,
            "webpKB": self.webp_kb,
            "savings": self.savings,
        }


__all__ = [
    "BatchReport",
    "ConversionOptions",
    "ConversionOutcome",
    "FileError",
]
