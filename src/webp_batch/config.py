from __future__ import annotations

import json
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Mapping


CONFIG_FILE = Path("config.toml")

EncoderPreference = Literal["auto", "cwebp", "pillow"]
_PREFERENCES: tuple[str, ...] = ("auto", "cwebp", "pillow")


@dataclass(slots=True)
class DefaultsConfig:
    quality: int = 75
    lossless: bool = False
    preserve_metadata: bool = False
    threads: int = 0

    @property
    def effective_threads(self) -> int:
        if self.threads > 0:
            return self.threads
        return os.cpu_count() or 1


@dataclass(slots=True)
class EncoderConfig:
    prefer: EncoderPreference = "auto"
    cwebp_path: str = "cwebp"
    probe_timeout_s: float = 10.0
    pillow_method: int = 4


@dataclass(slots=True)
class RuntimeConfig:
    log_file: Path | None = None
    enable_local_api: bool = False


@dataclass(slots=True)
class APIConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class AppConfig:
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    api: APIConfig = field(default_factory=APIConfig)


def _read_toml(path: Path) -> Mapping[str, object]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _section(raw: Mapping[str, object], name: str) -> Mapping[str, object] | None:
    value = raw.get(name)
    return value if isinstance(value, Mapping) else None


def _build_defaults(data: Mapping[str, object] | None) -> DefaultsConfig:
    if not data:
        return DefaultsConfig()
    quality = int(data.get("quality", 75))
    if not 0 <= quality <= 100:
        raise ValueError(f"defaults.quality must be between 0 and 100, got {quality}")
    threads = int(data.get("threads", 0))
    if threads < 0:
        raise ValueError(f"defaults.threads must be 0 (all CPUs) or positive, got {threads}")
    return DefaultsConfig(
        quality=quality,
        lossless=bool(data.get("lossless", False)),
        preserve_metadata=bool(data.get("preserve_metadata", False)),
        threads=threads,
    )


def parse_preference(value: object) -> EncoderPreference:
    prefer = str(value).strip().lower()
    if prefer not in _PREFERENCES:
        raise ValueError(f"Unsupported encoder preference: {value!r}")
    return prefer  # type: ignore[return-value]


def _build_encoder(data: Mapping[str, object] | None) -> EncoderConfig:
    if not data:
        return EncoderConfig()
    return EncoderConfig(
        prefer=parse_preference(data.get("prefer", "auto")),
        cwebp_path=str(data.get("cwebp_path", "cwebp")),
        probe_timeout_s=float(data.get("probe_timeout_s", 10.0)),
        pillow_method=int(data.get("pillow_method", 4)),
    )


def _build_runtime(data: Mapping[str, object] | None) -> RuntimeConfig:
    if not data:
        return RuntimeConfig()
    log_file = str(data.get("log_file", "") or "")
    return RuntimeConfig(
        log_file=Path(log_file) if log_file else None,
        enable_local_api=bool(data.get("enable_local_api", False)),
    )


def _build_api(data: Mapping[str, object] | None) -> APIConfig:
    if not data:
        return APIConfig()
    return APIConfig(host=str(data.get("host", "127.0.0.1")), port=int(data.get("port", 8000)))


def load_config(path: Path | None = None) -> AppConfig:
    path = path or CONFIG_FILE
    raw = _read_toml(path)
    return AppConfig(
        defaults=_build_defaults(_section(raw, "defaults")),
        encoder=_build_encoder(_section(raw, "encoder")),
        runtime=_build_runtime(_section(raw, "runtime")),
        api=_build_api(_section(raw, "api")),
    )


def dump_config(config: AppConfig) -> str:
    payload = {
        "defaults": {
            "quality": config.defaults.quality,
            "lossless": config.defaults.lossless,
            "preserve_metadata": config.defaults.preserve_metadata,
            "threads": config.defaults.threads,
        },
        "encoder": {
            "prefer": config.encoder.prefer,
            "cwebp_path": config.encoder.cwebp_path,
            "probe_timeout_s": config.encoder.probe_timeout_s,
            "pillow_method": config.encoder.pillow_method,
        },
        "runtime": {
            "log_file": str(config.runtime.log_file) if config.runtime.log_file else "",
            "enable_local_api": config.runtime.enable_local_api,
        },
        "api": {
            "host": config.api.host,
            "port": config.api.port,
        },
    }
    return json.dumps(payload, indent=2)
