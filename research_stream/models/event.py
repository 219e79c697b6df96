"""Pydantic models for inbound stream frames and decoded events."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def utc_timestamp() -> str:
    """Current time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class LogEventKind(str, Enum):
    """Kind of a decoded stream event."""

    LOG = "log"
    COMPLETION = "completion"
    ERROR = "error"


class InboundFrame(BaseModel):
    """One frame as sent by the backend agent."""

    session_id: str | None = None
    output: str = ""
    step: int = 0
    is_complete: bool = False
    timestamp: str | None = None


class LogEvent(BaseModel):
    """A decoded stream event delivered to subscribers."""

    kind: LogEventKind
    payload: str = ""
    timestamp: str = Field(default_factory=utc_timestamp)
    step: int | None = None
    session_id: str | None = None
    code: str | None = None  # Error code, only set for error events

    class Config:
        use_enum_values = True

    @property
    def is_error(self) -> bool:
        return self.kind == LogEventKind.ERROR

    @classmethod
    def error(cls, code: str, message: str, session_id: str | None = None) -> "LogEvent":
        """Build an error event."""
        return cls(kind=LogEventKind.ERROR, payload=message, code=code, session_id=session_id)
