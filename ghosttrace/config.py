from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import ValidationError as PydanticValidationError

from .config_schema import AppConfig
from .errors import ConfigError

DB_PATH_ENV = "GHOSTTRACE_DB"


def load_config(path: str | Path | None = None) -> AppConfig:
    """
    Load a YAML config file and validate it into a typed AppConfig.

    With no path, returns the defaults. Raises ConfigError with a readable
    validation message on failure.
    """
    if path is None:
        return AppConfig()

    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    try:
        return AppConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e


def resolve_storage_path(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> str | None:
    """
    Return the snapshot database path, or None when persistence is disabled.

    The GHOSTTRACE_DB environment variable overrides the configured path.
    """
    if not config.storage.enabled:
        return None

    env = os.environ if environ is None else environ
    override = (env.get(DB_PATH_ENV) or "").strip()
    return override or config.storage.path


def _format_pydantic_errors(err: PydanticValidationError, path: Path) -> str:
    lines: list[str] = [f"Invalid configuration in {path}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
