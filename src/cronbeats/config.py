from __future__ import annotations

import logging
from typing import TypedDict

from cronbeats import _test_hooks
from cronbeats.logging import LogFormat, LogLevel, setup_logging

DEFAULT_BASE_URL = "https://cronbeats.io"
DEFAULT_TIMEOUT_MS = 5000
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_BACKOFF_MS = 250
DEFAULT_RETRY_JITTER_MS = 100
DEFAULT_USER_AGENT = "cronbeats-python-sdk/0.1.0"


class ConfigError(RuntimeError):
    """Raised when a CRONBEATS_* environment variable cannot be parsed."""


class ClientSettings(TypedDict):
    base_url: str
    timeout_ms: int
    max_retries: int
    retry_backoff_ms: int
    retry_jitter_ms: int
    user_agent: str
    log_level: LogLevel
    log_format: LogFormat


def _optional_env_str(key: str) -> str | None:
    value = _test_hooks.get_env(key)
    if value is None:
        return None
    trimmed = value.strip()
    if trimmed == "":
        return None
    return trimmed


def _parse_str(key: str, default: str) -> str:
    val = _optional_env_str(key)
    return val if val is not None else default


def _parse_int(key: str, default: int) -> int:
    val = _optional_env_str(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ConfigError(f"Env var {key} must be an integer, got {val!r}") from exc


def _parse_log_level(key: str, default: LogLevel) -> LogLevel:
    val = _optional_env_str(key)
    if val is None:
        return default
    upper_val = val.upper()
    if upper_val == "DEBUG":
        return "DEBUG"
    if upper_val == "INFO":
        return "INFO"
    if upper_val == "WARNING":
        return "WARNING"
    if upper_val == "ERROR":
        return "ERROR"
    if upper_val == "CRITICAL":
        return "CRITICAL"
    return default


def _parse_log_format(key: str, default: LogFormat) -> LogFormat:
    val = _optional_env_str(key)
    if val is None:
        return default
    lowered = val.lower()
    if lowered == "json":
        return "json"
    if lowered == "text":
        return "text"
    return default


def load_client_settings() -> ClientSettings:
    """Read client options from CRONBEATS_* environment variables.

    Every variable is optional; unset or blank values fall back to the
    PingClient defaults.
    """
    return {
        "base_url": _parse_str("CRONBEATS_BASE_URL", DEFAULT_BASE_URL),
        "timeout_ms": _parse_int("CRONBEATS_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
        "max_retries": _parse_int("CRONBEATS_MAX_RETRIES", DEFAULT_MAX_RETRIES),
        "retry_backoff_ms": _parse_int("CRONBEATS_RETRY_BACKOFF_MS", DEFAULT_RETRY_BACKOFF_MS),
        "retry_jitter_ms": _parse_int("CRONBEATS_RETRY_JITTER_MS", DEFAULT_RETRY_JITTER_MS),
        "user_agent": _parse_str("CRONBEATS_USER_AGENT", DEFAULT_USER_AGENT),
        "log_level": _parse_log_level("CRONBEATS_LOG_LEVEL", "INFO"),
        "log_format": _parse_log_format("CRONBEATS_LOG_FORMAT", "text"),
    }


def setup_logging_from_env(service_name: str) -> logging.Logger:
    """Configure root logging from CRONBEATS_LOG_LEVEL and CRONBEATS_LOG_FORMAT."""
    settings = load_client_settings()
    return setup_logging(
        level=settings["log_level"],
        format_mode=settings["log_format"],
        service_name=service_name,
        instance_id=None,
        extra_fields=None,
    )


__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_RETRY_BACKOFF_MS",
    "DEFAULT_RETRY_JITTER_MS",
    "DEFAULT_TIMEOUT_MS",
    "DEFAULT_USER_AGENT",
    "ClientSettings",
    "ConfigError",
    "load_client_settings",
    "setup_logging_from_env",
]
