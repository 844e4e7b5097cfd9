from __future__ import annotations

from ..config import EncoderConfig
from .base import EncodeError, Encoder, EncoderAvailability, ExternalEncoder
from .cwebp import CWebPEncoder
from .pillow import PillowEncoder


def build_external(config: EncoderConfig) -> CWebPEncoder:
    return CWebPEncoder(config.cwebp_path, probe_timeout_s=config.probe_timeout_s)


def build_fallback(config: EncoderConfig) -> PillowEncoder:
    return PillowEncoder(method=config.pillow_method)


__all__ = [
    "CWebPEncoder",
    "EncodeError",
    "Encoder",
    "EncoderAvailability",
    "ExternalEncoder",
    "PillowEncoder",
    "build_external",
    "build_fallback",
]
