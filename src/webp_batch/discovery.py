from __future__ import annotations

import os
from pathlib import Path

from .errors import DiscoveryError

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({".png", ".jpg", ".jpeg"})


def is_supported(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


def _raise_scan_error(exc: OSError) -> None:
    raise DiscoveryError(f"Cannot scan {exc.filename}: {exc.strerror or exc}") from exc


def find_images(source_dir: Path) -> list[Path]:
    """Return absolute paths of every PNG/JPEG file below *source_dir*.

    Directories and files are visited in sorted order so repeated scans of an
    unchanged tree yield the same sequence. Any error while walking the tree
    is raised as :class:`DiscoveryError`.
    """

    root = Path(source_dir).expanduser().absolute()
    if not root.is_dir():
        raise DiscoveryError(f"Source directory does not exist: {root}")

    images: list[Path] = []
    for current, dirnames, filenames in os.walk(root, onerror=_raise_scan_error):
        dirnames.sort()
        for filename in sorted(filenames):
            candidate = Path(current) / filename
            if is_supported(candidate) and candidate.is_file():
                images.append(candidate)
    return images


__all__ = ["SUPPORTED_EXTENSIONS", "find_images", "is_supported"]
