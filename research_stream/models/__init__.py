"""Data models for the research stream client."""

from research_stream.models.event import InboundFrame, LogEvent, LogEventKind
from research_stream.models.session import (
    ConnectionState,
    ConnectionStatus,
    QueryRequest,
    QueryTurn,
    TurnStatus,
)

__all__ = [
    # Connection
    "ConnectionState",
    "ConnectionStatus",
    # Queries
    "QueryRequest",
    "QueryTurn",
    "TurnStatus",
    # Stream events
    "InboundFrame",
    "LogEvent",
    "LogEventKind",
]
