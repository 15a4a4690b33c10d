"""Configuration loading and validation."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from docsynth.exceptions import InvalidConfigError
from docsynth.models import AppConfig

_ENV_TO_CONFIG: dict[str, str] = {
    "DOCSYNTH_WORKSPACE_ROOT": "workspace_root",
    "DOCSYNTH_TEMPLATES_DIR": "templates_dir",
    "DOCSYNTH_AUTHOR": "author",
    "DOCSYNTH_DEFAULT_TEMPLATE": "default_template",
    "DOCSYNTH_ENABLE_DOCUMENT_UPDATES": "enable_document_updates",
    "DOCSYNTH_TRACE_DIR": "trace_dir",
}

_BOOL_FIELDS = {"enable_document_updates"}


def load_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    dotenv_path: Path | None = None,
) -> AppConfig:
    """Load config from defaults, yaml file, .env, env, and explicit overrides."""
    payload: dict[str, Any] = {}
    dotenv_to_load = dotenv_path if dotenv_path is not None else Path(".env")
    load_dotenv(dotenv_path=dotenv_to_load, override=False)

    if config_path is not None:
        if not config_path.exists():
            raise InvalidConfigError(f"Config file does not exist: {config_path}")
        try:
            raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise InvalidConfigError(f"Config file is not valid YAML: {exc}") from exc
        if not isinstance(raw, dict):
            raise InvalidConfigError("Config file must contain a top-level mapping.")
        payload.update(raw)

    for env_key, config_key in _ENV_TO_CONFIG.items():
        env_value = os.getenv(env_key)
        if env_value is None or env_value == "":
            continue
        payload[config_key] = _coerce_env_value(config_key, env_value)

    if overrides:
        for key, value in overrides.items():
            if value is not None:
                payload[key] = value

    try:
        config = AppConfig(**payload)
    except ValidationError as exc:
        raise InvalidConfigError(f"Invalid configuration: {exc}") from exc

    if not config.default_template.strip():
        raise InvalidConfigError("default_template must not be empty.")
    return config


def resolve_templates_dir(config: AppConfig) -> Path:
    """Workspace template directory; relative paths hang off ``workspace_root``."""
    templates_dir = Path(config.templates_dir)
    if templates_dir.is_absolute():
        return templates_dir
    return Path(config.workspace_root) / templates_dir


def ensure_trace_root(path_value: str) -> Path:
    """Ensure the trace root exists."""
    path = Path(path_value)
    path.mkdir(parents=True, exist_ok=True)
    return path


def _coerce_env_value(config_key: str, env_value: str) -> Any:
    if config_key in _BOOL_FIELDS:
        normalized = env_value.strip().lower()
        return normalized in {"1", "true", "yes", "on"}
    return env_value
