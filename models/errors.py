"""Error taxonomy shared by the telemetry services."""

from __future__ import annotations


class TelemetryError(Exception):
    """Base class for telemetry service failures."""


class ValidationError(TelemetryError, ValueError):
    """Invalid input rejected before any state was mutated."""


class SessionActiveError(ValidationError):
    """A session is already recording and must be ended first."""


class NotConnectedError(TelemetryError):
    """An operation needed an open relay connection or active session."""


class NoActiveSessionError(NotConnectedError):
    """No session is currently recording."""


class SessionNotFoundError(TelemetryError, KeyError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id!r} not found.")
        self.session_id = session_id

    def __str__(self) -> str:
        return self.args[0]


class TransportError(TelemetryError):
    """Network level failure such as a bind error or a broken socket."""


class ReconnectExhaustedError(TransportError):
    """The relay client used up its reconnect attempts."""


class DecodeError(TelemetryError, ValueError):
    """An inbound relay message could not be decoded."""
