from __future__ import annotations

import hashlib
import os
import secrets
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


def generate_run_id(prefix: str = "run") -> str:
    epoch_ms = int(time.time() * 1000)
    random_bits = hashlib.sha256(os.urandom(16)).hexdigest()[:8]
    return f"{prefix}-{epoch_ms}-{random_bits}"


def atomic_write(path: Path, data: str, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("w", delete=False, dir=path.parent, encoding=encoding) as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
    os.replace(tmp.name, path)


@contextmanager
def atomic_output(destination: Path, suffix: str = ".webp") -> Iterator[Path]:
    """Yield a temporary sibling of *destination* and move it into place on success.

    The temporary file is removed when the block raises, so a failed write never
    leaves a partial file at *destination*.
    """

    tmp_path = destination.with_name(f".{destination.stem}-{secrets.token_hex(6)}{suffix}")
    try:
        yield tmp_path
        os.replace(tmp_path, destination)
    finally:
        tmp_path.unlink(missing_ok=True)


def bytes_to_kb(size: int) -> float:
    return size / 1024
