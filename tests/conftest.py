from __future__ import annotations

import os
from pathlib import Path
from typing import Callable

import pytest
from PIL import Image

from webp_batch.config import AppConfig, EncoderConfig

ImageFactory = Callable[..., Path]


def _noise_image(size_bytes: int, mode: str = "RGB") -> Image.Image:
    channels = len(mode)
    side = max(1, int((size_bytes / channels) ** 0.5))
    return Image.frombytes(mode, (side, side), os.urandom(side * side * channels))


@pytest.fixture
def make_image() -> ImageFactory:
    def factory(path: Path, *, size_bytes: int = 4096, mode: str = "RGB", fmt: str | None = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        image = _noise_image(size_bytes, mode)
        image.save(path, format=fmt or ("JPEG" if path.suffix.lower() in {".jpg", ".jpeg"} else "PNG"))
        return path

    return factory


@pytest.fixture
def pillow_config() -> AppConfig:
    return AppConfig(encoder=EncoderConfig(prefer="pillow"))
