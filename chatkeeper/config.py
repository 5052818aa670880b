"""Persisted configuration management."""

from __future__ import annotations

import json
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Optional

from .files import default_library_dir
from .models import Config, ExportFormat

CONFIG_PATH = (Path.home() / ".chatkeeper" / "config.json").expanduser()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or saved."""


def _read_config() -> Config:
    if not CONFIG_PATH.exists():
        return Config()
    try:
        payload = json.loads(CONFIG_PATH.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Configuration file {CONFIG_PATH} must contain a JSON object")
    known = {f.name for f in fields(Config)}
    unknown = set(payload) - known
    if unknown:
        raise ConfigError(f"Unknown configuration keys in {CONFIG_PATH}: {', '.join(sorted(unknown))}")
    return Config(**payload)


def load_config() -> Config:
    config = _read_config()
    validate_config(config)
    return config


def save_config(config: Config) -> None:
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    data = {k: v for k, v in asdict(config).items() if v is not None}
    CONFIG_PATH.write_text(json.dumps(data, indent=2))


def update_config(**kwargs: Any) -> Config:
    config = _read_config()
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ConfigError(f"Unknown configuration key: {key}")
    validate_config(config)
    save_config(config)
    return config


def validate_config(config: Config) -> None:
    try:
        ExportFormat(config.export_format)
    except ValueError as exc:
        choices = ", ".join(f.value for f in ExportFormat)
        raise ConfigError(f"Invalid export format {config.export_format!r}; expected one of {choices}") from exc
    if not isinstance(config.log_level, str) or config.log_level.upper() not in LOG_LEVELS:
        raise ConfigError(f"Invalid log level {config.log_level!r}; expected one of {', '.join(LOG_LEVELS)}")


def library_dir(config: Config) -> Path:
    if config.library_dir:
        return Path(config.library_dir).expanduser()
    return default_library_dir()


def mirror_dir(config: Config) -> Optional[Path]:
    if config.mirror_dir:
        return Path(config.mirror_dir).expanduser()
    return None
