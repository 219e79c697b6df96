"""Pydantic models for sessions, queries and query turns."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ConnectionState(str, Enum):
    """Lifecycle state of a session's connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ConnectionStatus(BaseModel):
    """Snapshot of a connection published to state subscribers."""

    state: ConnectionState
    session_id: str | None = None
    reconnect_attempts: int = 0
    reconnecting: bool = False  # A reconnect attempt is scheduled
    close_code: int | None = None
    close_reason: str | None = None

    @property
    def is_terminal(self) -> bool:
        """Closed or disconnected with no reconnect on the way."""
        return (
            self.state in (ConnectionState.CLOSED, ConnectionState.DISCONNECTED)
            and not self.reconnecting
        )


class QueryRequest(BaseModel):
    """A prompt submitted to the research agent."""

    prompt: str
    self_critic: bool = False
    test_time_scale_round: int = 0
    model: str | None = None
    source: str | None = None

    class Config:
        frozen = True

    def to_wire(self) -> dict[str, Any]:
        """Outbound frame body for this request."""
        payload: dict[str, Any] = {
            "message": self.prompt,
            "self_critic": self.self_critic,
            "use_tool_retriever": True,
        }
        if self.model:
            payload["model"] = self.model
        if self.source:
            payload["source"] = self.source
        return payload


class TurnStatus(str, Enum):
    """Status of a query turn."""

    PENDING = "pending"  # Sent, nothing streamed yet
    STREAMING = "streaming"  # Log frames arriving
    COMPLETED = "completed"
    FAILED = "failed"


class QueryTurn(BaseModel):
    """The backend's processing of one QueryRequest, as seen by the client."""

    request: QueryRequest | None = None
    logs: list[str] = Field(default_factory=list)
    status: TurnStatus = TurnStatus.PENDING
    final_output: str | None = None
    is_solution: bool = False
    error: str | None = None
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        """Whether the turn still accepts log appends."""
        return self.status in (TurnStatus.PENDING, TurnStatus.STREAMING)

    @property
    def text(self) -> str:
        """All logs joined as one transcript."""
        return "\n".join(self.logs)
