from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Deque, Dict, Optional, Tuple

from models.errors import (
    NoActiveSessionError,
    SessionActiveError,
    SessionNotFoundError,
    ValidationError,
)
from models.records import GeneratorConfig, Measurement
from services.aggregator import Aggregator, SessionStats

logger = logging.getLogger(__name__)

DEFAULT_MAX_MEASUREMENTS = 10_000


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """A named recording.

    While active the measurement buffer keeps only the most recent
    ``max_measurements`` entries; older ones are dropped without notice.
    Once ended the session no longer accepts measurements.
    """

    id: str
    name: str
    start_time: datetime
    config: GeneratorConfig
    notes: Optional[str] = None
    end_time: Optional[datetime] = None
    max_measurements: int = DEFAULT_MAX_MEASUREMENTS
    _buffer: Deque[Measurement] = field(default_factory=deque, repr=False)
    _sealed: Tuple[Measurement, ...] = field(default=(), repr=False)

    def __post_init__(self) -> None:
        self._buffer = deque(self._buffer, maxlen=self.max_measurements)

    @property
    def active(self) -> bool:
        return self.end_time is None

    @property
    def measurements(self) -> Tuple[Measurement, ...]:
        if self.active:
            return tuple(self._buffer)
        return self._sealed

    def append(self, measurement: Measurement) -> None:
        if not self.active:
            raise ValidationError(f"Session {self.id!r} has ended and is read-only.")
        self._buffer.append(measurement)

    def seal(self, end_time: datetime) -> None:
        self._sealed = tuple(self._buffer)
        self._buffer.clear()
        self.end_time = end_time

    def duration_seconds(self, now: datetime) -> float:
        end = self.end_time or now
        return (end - self.start_time).total_seconds()


class SessionRecorder:
    """Owns every session and at most one active recording."""

    def __init__(
        self,
        aggregator: Optional[Aggregator] = None,
        max_measurements: int = DEFAULT_MAX_MEASUREMENTS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.aggregator = aggregator or Aggregator()
        self.max_measurements = max_measurements
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._current_id: Optional[str] = None
        self._lock = Lock()

    def start_session(
        self, name: str, config: GeneratorConfig, notes: Optional[str] = None
    ) -> str:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Session name must not be empty.")

        with self._lock:
            if self._current_id is not None:
                raise SessionActiveError(
                    f"Session {self._current_id!r} is still active; end it before starting another."
                )
            session = Session(
                id=f"session_{uuid.uuid4().hex}",
                name=clean_name,
                start_time=self._clock(),
                config=config.snapshot(),
                notes=notes,
                max_measurements=self.max_measurements,
            )
            self._sessions[session.id] = session
            self._current_id = session.id

        logger.info("Started session %s", clean_name, extra={"session_id": session.id})
        return session.id

    def add_measurement(self, measurement: Measurement) -> bool:
        with self._lock:
            session = self._current()
            if session is not None:
                session.append(measurement)
                return True
        logger.warning("No active session; measurement not recorded.")
        return False

    def end_session(self) -> Session:
        with self._lock:
            session = self._current()
            if session is None:
                raise NoActiveSessionError("No active session to end.")
            session.seal(self._clock())
            self._current_id = None

        logger.info(
            "Ended session %s",
            session.name,
            extra={"session_id": session.id, "measurement_count": len(session.measurements)},
        )
        return session

    def current_session(self) -> Optional[Session]:
        with self._lock:
            return self._current()

    def get_session(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(self) -> list[Session]:
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.start_time)

    def stats(self, session_id: str) -> Optional[SessionStats]:
        session = self.get_session(session_id)
        measurements = session.measurements
        duration = session.duration_seconds(self._clock())
        return self.aggregator.aggregate(measurements, duration_seconds=duration)

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(session_id, None)
            if removed is None:
                return False
            if self._current_id == session_id:
                self._current_id = None
        logger.info("Deleted session", extra={"session_id": session_id})
        return True

    def clear_all(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._current_id = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _current(self) -> Optional[Session]:
        if self._current_id is None:
            return None
        return self._sessions.get(self._current_id)
