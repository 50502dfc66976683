"""Read/write the runtime-editable AppConfig file."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from vidcards.core.settings import PATHS
from vidcards.schemas.config import AppConfig

API_KEY_ENV = "OPENAI_API_KEY"
_PROVIDER_SECTIONS = ("transcription", "generation")


class ConfigFileError(ValueError):
    pass


def _apply_env_keys(config: AppConfig) -> AppConfig:
    env_key = os.environ.get(API_KEY_ENV, "")
    if not env_key:
        return config
    for name in _PROVIDER_SECTIONS:
        section = getattr(config, name)
        if not section.api_key:
            section.api_key = env_key
    return config


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Stored settings, with blank provider keys taken from OPENAI_API_KEY."""
    path = path or PATHS.config_path
    if not path.exists():
        return AppConfig()
    try:
        config = AppConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigFileError(f"config file {path} is invalid: {exc}") from exc
    return _apply_env_keys(config)


def save_config(config: AppConfig, path: Optional[Path] = None) -> AppConfig:
    path = path or PATHS.config_path
    data = config.model_dump(mode="json")
    env_key = os.environ.get(API_KEY_ENV, "")
    for name in _PROVIDER_SECTIONS:
        # A key that only mirrors the environment is not written to disk.
        if env_key and data[name]["api_key"] == env_key:
            data[name]["api_key"] = ""

    path.parent.mkdir(parents=True, exist_ok=True)
    staging = path.with_name(f"{path.name}.tmp")
    staging.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    staging.replace(path)
    return config
