from __future__ import annotations

import re
from pathlib import Path

from .models import ConversionOptions

WEBP_SUFFIX = ".webp"
_SOURCE_SUFFIX_RE = re.compile(r"\.(png|jpe?g)$", re.IGNORECASE)


def resolve_output_path(source: Path, options: ConversionOptions) -> Path:
    """Derive where the WebP version of *source* is written.

    Flat mode wins over overwrite mode. Files sharing a stem in different
    subdirectories collide in flat mode and the last one written is kept.
    """

    if options.flat is not None:
        flat_dir = Path(options.flat)
        flat_dir.mkdir(parents=True, exist_ok=True)
        return flat_dir / f"{source.stem}{WEBP_SUFFIX}"
    if options.overwrite:
        replaced, count = _SOURCE_SUFFIX_RE.subn(WEBP_SUFFIX, source.name)
        if count:
            return source.with_name(replaced)
        return source.with_suffix(WEBP_SUFFIX)
    return source.parent / f"{source.stem}{WEBP_SUFFIX}"


def is_webp(path: Path) -> bool:
    return path.suffix.lower() == WEBP_SUFFIX


__all__ = ["WEBP_SUFFIX", "is_webp", "resolve_output_path"]
