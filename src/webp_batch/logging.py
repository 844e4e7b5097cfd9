from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from .models import ConversionOutcome


@dataclass(slots=True)
class RunLogEntry:
    batch_id: str
    source: str
    status: str
    encoder: str | None
    output_path: str | None
    original_size: int
    output_size: int
    error_code: str | None
    error: str | None
    elapsed_ms: float
    timestamp: str

    @classmethod
    def from_outcome(cls, batch_id: str, outcome: ConversionOutcome) -> "RunLogEntry":
        return cls(
            batch_id=batch_id,
            source=str(outcome.source),
            status="success" if outcome.success else "failure",
            encoder=outcome.encoder,
            output_path=str(outcome.output_path) if outcome.output_path else None,
            original_size=outcome.original_size,
            output_size=outcome.output_size,
            error_code=outcome.error_code,
            error=outcome.error,
            elapsed_ms=round(outcome.elapsed_ms, 3),
            timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RunLogger:
    def __init__(self, log_file: Path) -> None:
        self._log_file = log_file

    @property
    def log_file(self) -> Path:
        return self._log_file

    def ensure_writable(self) -> None:
        self._log_file.parent.mkdir(parents=True, exist_ok=True)
        with self._log_file.open("a", encoding="utf-8"):
            pass

    def append(self, entry: RunLogEntry) -> None:
        line = json.dumps(entry.to_dict(), ensure_ascii=False)
        with self._log_file.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")


__all__ = ["RunLogEntry", "RunLogger"]
