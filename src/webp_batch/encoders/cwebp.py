from __future__ import annotations

import subprocess
from pathlib import Path

from ..models import ConversionOptions
from ..utils import atomic_output
from .base import EncodeError

METADATA_FLAGS = ("-metadata", "exif,icc")


class CWebPEncoder:
    """Encoder backed by Google's ``cwebp`` command-line tool."""

    name = "cwebp"

    def __init__(self, binary: str = "cwebp", *, probe_timeout_s: float = 10.0) -> None:
        self._binary = binary
        self._probe_timeout_s = probe_timeout_s

    @property
    def binary(self) -> str:
        return self._binary

    def probe(self) -> bool:
        """Return True when ``cwebp -version`` runs and exits cleanly."""

        try:
            completed = subprocess.run(
                [self._binary, "-version"],
                capture_output=True,
                text=True,
                timeout=self._probe_timeout_s,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        return completed.returncode == 0

    def build_args(self, source: Path, destination: Path, options: ConversionOptions) -> list[str]:
        args = [self._binary, str(source), "-o", str(destination)]
        if options.lossless:
            args.append("-lossless")
        else:
            args.extend(["-q", str(options.quality)])
        if options.preserve_metadata:
            args.extend(METADATA_FLAGS)
        return args

    def encode(self, source: Path, destination: Path, options: ConversionOptions) -> None:
        with atomic_output(destination) as tmp_path:
            args = self.build_args(source, tmp_path, options)
            try:
                completed = subprocess.run(args, capture_output=True, text=True, check=False)
            except OSError as exc:
                raise EncodeError(f"cwebp could not be started: {exc}") from exc
            if completed.returncode != 0:
                detail = (completed.stderr or "").strip().splitlines()
                message = f"cwebp exit code: {completed.returncode}"
                if detail:
                    message = f"{message} ({detail[-1]})"
                raise EncodeError(message, exit_code=completed.returncode)


__all__ = ["CWebPEncoder"]
