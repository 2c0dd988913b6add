""" Configuration lookup for the analysis pipeline and LLM adapters."""

from __future__ import annotations

from functools import lru_cache
import os
from pathlib import Path

from core.config_adapter import ConfigAdapter, ConfigSource, DotEnvConfigSource, EnvConfigSource

_TRUTHY = {"1", "true", "yes", "y", "on"}
_FALSY = {"0", "false", "no", "n", "off"}


@lru_cache
def _config_adapter() -> ConfigAdapter:
    sources: list[ConfigSource] = [EnvConfigSource()]
    dotenv_path = Path(os.getenv("DOTENV_PATH", ".env"))
    sources.append(DotEnvConfigSource(path=dotenv_path))
    return ConfigAdapter(tuple(sources))


def get_config_value(key: str, default: str | None = None) -> str | None:
    return _config_adapter().get(key, default)


def get_bool_setting(key: str, default: bool) -> bool:
    """Parse a boolean flag; unrecognised values fall back to ``default``."""
    raw = get_config_value(key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    return default


def get_float_setting(key: str, default: float | None) -> float | None:
    raw = get_config_value(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_default_model() -> str:
    """Return the configured default model name.

    Requires LLM_MODEL to be set in configuration; no implicit defaults.
    """
    value = get_config_value("LLM_MODEL")
    if not value:
        raise RuntimeError("LLM_MODEL is not configured; set it in your config/.env")
    return value


def get_timeout_seconds() -> float:
    """Return the configured timeout (seconds) for a single LLM call.

    Requires LLM_TIMEOUT_SECONDS to be set in configuration.
    """
    raw = get_config_value("LLM_TIMEOUT_SECONDS")
    if not raw:
        raise RuntimeError("LLM_TIMEOUT_SECONDS is not configured; set it in your config/.env")
    try:
        return float(raw)
    except ValueError:
        return 60.0
