from __future__ import annotations

from pathlib import Path
from typing import Any

from PIL import Image

from ..models import ConversionOptions
from ..utils import atomic_output
from .base import EncodeError

_WEBP_MODES = {"RGB", "RGBA"}


def _prepare_image(image: Image.Image) -> Image.Image:
    if image.mode in _WEBP_MODES:
        return image
    has_alpha = image.mode in {"LA", "PA", "RGBa", "La"} or "transparency" in image.info
    return image.convert("RGBA" if has_alpha else "RGB")


def _metadata_kwargs(image: Image.Image) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    exif = image.info.get("exif")
    if exif:
        kwargs["exif"] = exif
    icc_profile = image.info.get("icc_profile")
    if icc_profile:
        kwargs["icc_profile"] = icc_profile
    return kwargs


class PillowEncoder:
    """In-process fallback encoder using Pillow's WebP plugin."""

    name = "pillow"

    def __init__(self, *, method: int = 4) -> None:
        self._method = max(0, min(method, 6))

    def save_kwargs(self, image: Image.Image, options: ConversionOptions) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"format": "WEBP", "method": self._method}
        if options.lossless:
            kwargs["lossless"] = True
        else:
            kwargs["quality"] = options.quality
        if options.preserve_metadata:
            kwargs.update(_metadata_kwargs(image))
        return kwargs

    def encode(self, source: Path, destination: Path, options: ConversionOptions) -> None:
        try:
            with atomic_output(destination) as tmp_path:
                with Image.open(source) as image:
                    image.load()
                    kwargs = self.save_kwargs(image, options)
                    _prepare_image(image).save(tmp_path, **kwargs)
        except (OSError, ValueError, EOFError, SyntaxError, Image.DecompressionBombError) as exc:
            raise EncodeError(f"Pillow could not encode {source.name}: {exc}") from exc


__all__ = ["PillowEncoder"]
