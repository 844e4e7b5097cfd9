from __future__ import annotations


class ConversionError(RuntimeError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class EncodeError(ConversionError):
    """Raised by an encoder when it cannot produce a WebP file."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__("ENCODE_FAILED", message)
        self.exit_code = exit_code


class DiscoveryError(ConversionError):
    """Raised when the source tree cannot be scanned; fatal to a batch."""

    def __init__(self, message: str) -> None:
        super().__init__("DISCOVERY_FAILED", message)


__all__ = ["ConversionError", "DiscoveryError", "EncodeError"]
