from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Protocol

from ..errors import EncodeError
from ..models import ConversionOptions


class EncoderAvailability(str, Enum):
    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


class Encoder(Protocol):
    name: str

    def encode(
        self, source: Path, destination: Path, options: ConversionOptions
    ) -> None:  # pragma: no cover - interface
        ...


class ExternalEncoder(Encoder, Protocol):
    def probe(self) -> bool:  # pragma: no cover - interface
        ...


__all__ = ["EncodeError", "Encoder", "EncoderAvailability", "ExternalEncoder"]
