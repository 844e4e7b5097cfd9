from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from .config import AppConfig, load_config, parse_preference

DEFAULT_CONFIG_PATH = Path("config.toml")
ENV_PREFIX = "WEBP_BATCH_"


@dataclass(frozen=True, slots=True)
class Settings:
    """Environment overrides layered on top of ``config.toml``.

    ``None`` means the variable was not set (or not understood) and the
    file value stays in effect.
    """

    config_path: Path = DEFAULT_CONFIG_PATH
    enable_local_api: bool | None = None
    encoder: str | None = None
    log_file: Path | None = None


def _parse_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return None


def _env(name: str) -> str | None:
    value = os.getenv(f"{ENV_PREFIX}{name}")
    return value if value else None


def _read_settings() -> Settings:
    config_env = _env("CONFIG_PATH")
    log_env = _env("LOG_FILE")
    encoder_env = _env("ENCODER")
    return Settings(
        config_path=Path(config_env) if config_env else DEFAULT_CONFIG_PATH,
        enable_local_api=_parse_bool(_env("ENABLE_LOCAL_API")),
        encoder=parse_preference(encoder_env) if encoder_env else None,
        log_file=Path(log_env) if log_env else None,
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return _read_settings()


def apply_settings(config: AppConfig, settings: Settings) -> AppConfig:
    if settings.enable_local_api is not None:
        config.runtime.enable_local_api = settings.enable_local_api
    if settings.encoder is not None:
        config.encoder.prefer = settings.encoder  # type: ignore[assignment]
    if settings.log_file is not None:
        config.runtime.log_file = settings.log_file
    return config


def load_effective_config(path: Path | None = None) -> AppConfig:
    """Load ``config.toml`` (or *path*) and apply environment overrides."""

    settings = get_settings()
    return apply_settings(load_config(path or settings.config_path), settings)


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ENV_PREFIX",
    "Settings",
    "apply_settings",
    "get_settings",
    "load_effective_config",
]
