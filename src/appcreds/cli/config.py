"""Configuration helpers for the appcreds CLI."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from appcreds.authority import DEFAULT_AUTHORITY_BASE
from appcreds.errors import AppCredsError
from appcreds.store import DEFAULT_STORE_PATH as _DEFAULT_STORE_FILE

DEFAULT_CONFIG_PATH = Path.home() / ".appcreds" / "config.toml"
DEFAULT_STORE_PATH = str(_DEFAULT_STORE_FILE)
AUTHORITY_BASE_ENV_VAR = "APPCREDS_AUTHORITY_BASE"
STORE_PATH_ENV_VAR = "APPCREDS_STORE_PATH"
_LOG_LEVELS = {"debug", "info", "warning", "error"}


@dataclass(frozen=True)
class CLIConfig:
    authority_base: str = DEFAULT_AUTHORITY_BASE
    store_path: str = DEFAULT_STORE_PATH
    request_timeout: float = 30.0
    retries: int = 2
    log_level: str = "info"


class ConfigError(AppCredsError, ValueError):
    """Raised when CLI config is invalid."""


def _load_toml(path: Path) -> dict[str, Any]:
    raw = path.read_text(encoding="utf-8")

    try:  # Python 3.11+
        import tomllib  # type: ignore[attr-defined]
        try:
            return tomllib.loads(raw)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {path}: {exc}") from exc
    except ModuleNotFoundError:
        try:
            import tomli
        except ModuleNotFoundError as exc:
            raise ConfigError("toml parser unavailable; install tomli for Python < 3.11") from exc
        try:
            return tomli.loads(raw)
        except tomli.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML in {path}: {exc}") from exc


def _to_positive_float(value: Any, field_name: str) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be a number") from exc
    if parsed <= 0:
        raise ConfigError(f"{field_name} must be greater than zero")
    return parsed


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{field_name} must be a non-negative integer")
    return value


def load_cli_config(path: str | Path | None = None) -> CLIConfig:
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    source: dict[str, Any] = {}
    if config_path.exists():
        parsed = _load_toml(config_path)
        section = parsed.get("appcreds")
        if isinstance(section, dict):
            source = section
        elif section is None:
            source = parsed
        else:
            raise ConfigError("[appcreds] must be a table")

    env_authority_base = os.getenv(AUTHORITY_BASE_ENV_VAR)
    configured_authority_base = str(source.get("authority_base", DEFAULT_AUTHORITY_BASE)).strip()
    authority_base = (
        env_authority_base.strip() if env_authority_base else configured_authority_base
    )
    if not authority_base:
        raise ConfigError("authority_base must not be empty")

    env_store_path = os.getenv(STORE_PATH_ENV_VAR)
    configured_store_path = str(source.get("store_path", DEFAULT_STORE_PATH)).strip()
    store_path = env_store_path.strip() if env_store_path else configured_store_path
    if not store_path:
        raise ConfigError("store_path must not be empty")

    request_timeout = _to_positive_float(source.get("request_timeout", 30.0), "request_timeout")
    retries = _to_non_negative_int(source.get("retries", 2), "retries")

    log_level = str(source.get("log_level", "info")).strip().lower()
    if log_level not in _LOG_LEVELS:
        raise ConfigError("log_level must be one of: debug, info, warning, error")

    return CLIConfig(
        authority_base=authority_base,
        store_path=store_path,
        request_timeout=request_timeout,
        retries=retries,
        log_level=log_level,
    )
