from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, TypeVar

_RELAY_HOST_ENV = "RELAY_HOST"
_RELAY_PORT_ENV = "RELAY_PORT"
_RELAY_ENABLED_ENV = "RELAY_ENABLED"
_RELAY_CLIENT_URL_ENV = "RELAY_CLIENT_URL"
_RECONNECT_INTERVAL_ENV = "RELAY_RECONNECT_INTERVAL"
_MAX_RECONNECT_ENV = "RELAY_MAX_RECONNECT_ATTEMPTS"
_UPDATE_MS_ENV = "SIMULATION_UPDATE_MS"
_HISTORY_CAPACITY_ENV = "HISTORY_CAPACITY"
_SESSION_MAX_ENV = "SESSION_MAX_MEASUREMENTS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})

N = TypeVar("N", int, float)


@dataclass(frozen=True)
class Settings:
    relay_host: str
    relay_port: int
    relay_enabled: bool
    relay_client_url: str
    reconnect_interval: float
    max_reconnect_attempts: int
    update_interval_ms: int
    history_capacity: int
    session_max_measurements: int
    log_level: str


def _read_env(name: str) -> Optional[str]:
    """Stripped value of ``name``; unset and blank both read as ``None``."""
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip() or None


def _read_str(name: str, default: str) -> str:
    return _read_env(name) or default


def _read_positive(name: str, default: N, parse: Callable[[str], N]) -> N:
    candidate = _read_env(name)
    if candidate is None:
        return default
    try:
        parsed = parse(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_flag(name: str, default: bool) -> bool:
    candidate = (_read_env(name) or "").lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


@lru_cache
def get_settings() -> Settings:
    return Settings(
        relay_host=_read_str(_RELAY_HOST_ENV, "127.0.0.1"),
        relay_port=_read_positive(_RELAY_PORT_ENV, 8081, int),
        relay_enabled=_read_flag(_RELAY_ENABLED_ENV, True),
        relay_client_url=_read_str(_RELAY_CLIENT_URL_ENV, "ws://localhost:8081"),
        reconnect_interval=_read_positive(_RECONNECT_INTERVAL_ENV, 5.0, float),
        max_reconnect_attempts=_read_positive(_MAX_RECONNECT_ENV, 10, int),
        update_interval_ms=_read_positive(_UPDATE_MS_ENV, 100, int),
        history_capacity=_read_positive(_HISTORY_CAPACITY_ENV, 100, int),
        session_max_measurements=_read_positive(_SESSION_MAX_ENV, 10_000, int),
        log_level=_read_str(_LOG_LEVEL_ENV, "INFO").upper(),
    )
