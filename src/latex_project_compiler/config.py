"""Configuration loader.

Reads compilation settings from a YAML config file with ``${ENV_VAR}``
interpolation.  ``.env`` files are honoured through python-dotenv.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import ProjectConfig

load_dotenv()

# ---------------------------------------------------------------------------
# YAML loading with ${ENV_VAR} interpolation
# ---------------------------------------------------------------------------

_ENV_RE = re.compile(r"\$\{([^}]+)\}")
_DEFAULT_REMOTE_URL = "https://latex.ytotech.com/builds/sync"


def _resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${ENV_VAR}`` references in strings."""
    if isinstance(value, str):
        return _ENV_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


def apply_env_fallbacks(config: ProjectConfig) -> ProjectConfig:
    """Fill settings left empty from ``LPC_*`` environment variables."""
    if not config.remote_url:
        config.remote_url = os.getenv("LPC_REMOTE_URL") or _DEFAULT_REMOTE_URL
    config.remote_url = config.remote_url.rstrip("/")
    if not config.artifact_dir:
        config.artifact_dir = os.getenv("LPC_ARTIFACT_DIR") or None
    return config


def load_config(config_path: str | Path) -> ProjectConfig:
    """Load a ``ProjectConfig`` from a YAML file.

    Environment variables referenced as ``${VAR_NAME}`` are resolved;
    unset variables become empty strings and then fall back to ``LPC_*``
    defaults.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    resolved = _resolve_env_vars(raw)
    config = ProjectConfig.model_validate(resolved)
    return apply_env_fallbacks(config)
