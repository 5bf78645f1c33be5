"""Persistent bridge settings helpers."""

from __future__ import annotations

import json
import os
import shlex
from pathlib import Path
from typing import Any, Mapping

from platformdirs import user_config_dir

from sqlbridge.contracts import SETTINGS_SCHEMA_V1, SUPPORTED_SETTINGS_SCHEMAS

SETTINGS_PATH = Path(user_config_dir("sqlbridge")) / "settings.json"
DEFAULT_DBMS_COMMAND = ["./bin/dbms"]
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3001
ALLOWED_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

ENV_DBMS_COMMAND = "SQLBRIDGE_DBMS_COMMAND"
ENV_HOST = "SQLBRIDGE_HOST"
ENV_PORT = "SQLBRIDGE_PORT"
ENV_COMMAND_TIMEOUT = "SQLBRIDGE_COMMAND_TIMEOUT"
ENV_LOG_LEVEL = "SQLBRIDGE_LOG_LEVEL"


def default_settings() -> dict[str, Any]:
    return {
        "schema_version": SETTINGS_SCHEMA_V1,
        "dbms_command": list(DEFAULT_DBMS_COMMAND),
        "working_dir": None,
        "command_timeout_seconds": 10.0,
        "restart_delay_seconds": 1.0,
        "host": DEFAULT_HOST,
        "port": DEFAULT_PORT,
        "cors_origins": ["*"],
        "log_level": "INFO",
    }


def _positive_float(value: Any, name: str, *, allow_zero: bool = False) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number") from None
    if number < 0 or (number == 0 and not allow_zero):
        raise ValueError(f"{name} must be {'>= 0' if allow_zero else '> 0'}")
    return number


def validate_settings(settings: dict[str, Any]) -> dict[str, Any]:
    """Validate settings and return a normalized copy."""
    if not isinstance(settings, dict):
        raise ValueError("settings must be object")
    defaults = default_settings()
    schema_version = settings.get("schema_version", SETTINGS_SCHEMA_V1)
    if schema_version not in SUPPORTED_SETTINGS_SCHEMAS:
        raise ValueError("unsupported settings schema_version")

    dbms_command = settings.get("dbms_command", defaults["dbms_command"])
    if isinstance(dbms_command, str):
        dbms_command = shlex.split(dbms_command)
    if not isinstance(dbms_command, list) or not dbms_command:
        raise ValueError("dbms_command must be non-empty list")
    dbms_command = [str(part) for part in dbms_command]
    if not dbms_command[0].strip():
        raise ValueError("dbms_command executable must not be blank")

    working_dir = settings.get("working_dir")
    if working_dir is not None:
        working_dir = str(working_dir).strip() or None

    try:
        port = int(settings.get("port", DEFAULT_PORT))
    except (TypeError, ValueError):
        raise ValueError("port must be an integer") from None
    if not 1 <= port <= 65535:
        raise ValueError("port must be between 1 and 65535")

    host = str(settings.get("host", DEFAULT_HOST)).strip() or DEFAULT_HOST

    cors_origins = settings.get("cors_origins", defaults["cors_origins"])
    if not isinstance(cors_origins, list):
        raise ValueError("cors_origins must be list")

    log_level = str(settings.get("log_level", "INFO")).strip().upper()
    if log_level not in ALLOWED_LOG_LEVELS:
        raise ValueError(f"unsupported log_level: {log_level}")

    return {
        "schema_version": SETTINGS_SCHEMA_V1,
        "dbms_command": dbms_command,
        "working_dir": working_dir,
        "command_timeout_seconds": _positive_float(
            settings.get("command_timeout_seconds", defaults["command_timeout_seconds"]),
            "command_timeout_seconds",
        ),
        "restart_delay_seconds": _positive_float(
            settings.get("restart_delay_seconds", defaults["restart_delay_seconds"]),
            "restart_delay_seconds",
            allow_zero=True,
        ),
        "host": host,
        "port": port,
        "cors_origins": [str(origin) for origin in cors_origins],
        "log_level": log_level,
    }


def apply_env_overrides(settings: dict[str, Any], environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Overlay SQLBRIDGE_* environment variables onto settings."""
    env = os.environ if environ is None else environ
    merged = dict(settings)
    if env.get(ENV_DBMS_COMMAND):
        merged["dbms_command"] = shlex.split(env[ENV_DBMS_COMMAND])
    if env.get(ENV_HOST):
        merged["host"] = env[ENV_HOST]
    if env.get(ENV_PORT):
        merged["port"] = env[ENV_PORT]
    if env.get(ENV_COMMAND_TIMEOUT):
        merged["command_timeout_seconds"] = env[ENV_COMMAND_TIMEOUT]
    if env.get(ENV_LOG_LEVEL):
        merged["log_level"] = env[ENV_LOG_LEVEL]
    return merged


def load_settings(path: Path = SETTINGS_PATH, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Load settings from disk (defaults when missing or invalid) plus env overrides.

    Raises ValueError when an environment override is invalid.
    """
    settings = default_settings()
    if path.exists():
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            raw = None
        if isinstance(raw, dict):
            try:
                settings = validate_settings(raw)
            except ValueError:
                settings = default_settings()
    return validate_settings(apply_env_overrides(settings, environ))


def save_settings(settings: dict[str, Any], path: Path = SETTINGS_PATH) -> dict[str, Any]:
    """Validate and persist settings to disk."""
    validated = validate_settings(settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(validated, indent=2), encoding="utf-8")
    return validated
