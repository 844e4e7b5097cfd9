"""Batch PNG/JPEG to WebP conversion toolkit."""

from .config import AppConfig, load_config
from .core import WebPConverter
from .errors import ConversionError, DiscoveryError, EncodeError
from .models import BatchReport, ConversionOptions, ConversionOutcome

__all__ = [
    "AppConfig",
    "BatchReport",
    "ConversionError",
    "ConversionOptions",
    "ConversionOutcome",
    "DiscoveryError",
    "EncodeError",
    "WebPConverter",
    "load_config",
]
