from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_RELAY_URL = "ws://localhost:8081"
DEFAULT_TIMEOUT = 30.0

_BASE_URL_ENV = "API_BASE_URL"
_RELAY_URL_ENV = "RELAY_CLIENT_URL"
_TIMEOUT_ENV = "CLI_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    base_url: str = DEFAULT_BASE_URL
    relay_url: str = DEFAULT_RELAY_URL
    timeout: float = DEFAULT_TIMEOUT


def _env_timeout() -> float:
    raw = (os.getenv(_TIMEOUT_ENV) or "").strip()
    try:
        parsed = float(raw)
    except ValueError:
        return DEFAULT_TIMEOUT
    return parsed if parsed > 0 else DEFAULT_TIMEOUT


def load_config(
    base_url: Optional[str] = None,
    relay_url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> CLIConfig:
    """Resolve CLI settings: explicit options win over environment, then defaults."""
    url = base_url or os.getenv(_BASE_URL_ENV) or DEFAULT_BASE_URL
    relay = relay_url or os.getenv(_RELAY_URL_ENV) or DEFAULT_RELAY_URL
    return CLIConfig(
        base_url=url.rstrip("/"),
        relay_url=relay,
        timeout=timeout if timeout is not None else _env_timeout(),
    )
