"""Command-line client for the wind tunnel telemetry service."""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    if name == "app":
        return import_module("cli.app")
    raise AttributeError(name)

# ``cli.app`` must stay the module, not the Typer instance: tests patch
# ``cli.app.ApiClient`` and ``cli.app.RelayClient`` through that path.

__all__ = []
