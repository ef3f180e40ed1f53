"""Pydantic schemas for the HTTP API and the relay wire protocol."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from models.records import GeneratorConfig, Measurement

SCHEMA_VERSION = 2


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessageType(str, Enum):
    """Envelope kinds carried over the relay."""

    data = "data"
    status = "status"
    config = "config"
    command = "command"
    error = "error"


class _Envelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utc_now)


class DataMessage(_Envelope):
    type: Literal["data"] = "data"
    payload: Measurement


class StatusMessage(_Envelope):
    type: Literal["status"] = "status"
    payload: Dict[str, Any] = Field(default_factory=dict)


class ConfigMessage(_Envelope):
    type: Literal["config"] = "config"
    payload: Dict[str, Any] = Field(default_factory=dict)


class CommandMessage(_Envelope):
    type: Literal["command"] = "command"
    payload: Any = None


class ErrorPayload(BaseModel):
    message: str


class ErrorMessage(_Envelope):
    type: Literal["error"] = "error"
    payload: ErrorPayload


RelayMessage = Annotated[
    Union[DataMessage, StatusMessage, ConfigMessage, CommandMessage, ErrorMessage],
    Field(discriminator="type"),
]

relay_message_adapter: TypeAdapter[RelayMessage] = TypeAdapter(RelayMessage)


def encode_message(message: RelayMessage) -> str:
    return message.model_dump_json(by_alias=True)


class SimulationStatus(BaseModel):
    running: bool
    interval_ms: int
    ticks: int
    config: GeneratorConfig


class RelayStatus(BaseModel):
    running: bool
    client_count: int = Field(..., ge=0)
    port: Optional[int] = None


class StartSessionRequest(BaseModel):
    name: str
    notes: Optional[str] = None


class SessionCreated(BaseModel):
    session_id: str


class SessionSummary(BaseModel):
    """Session metadata without the measurement payload."""

    id: str
    name: str
    start_time: datetime
    end_time: Optional[datetime] = None
    active: bool
    notes: Optional[str] = None
    measurement_count: int = Field(..., ge=0)
    config: GeneratorConfig


class SessionDetail(SessionSummary):
    measurements: List[Measurement] = Field(default_factory=list)


class FieldStats(BaseModel):
    min: float
    max: float
    avg: float


class SessionStatsResponse(BaseModel):
    session_id: str
    count: int = Field(..., ge=0)
    duration_seconds: float
    drag: FieldStats
    lift: FieldStats
    velocity: FieldStats
    pressure: FieldStats
