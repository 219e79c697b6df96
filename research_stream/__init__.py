"""Realtime query-streaming client for research agent sessions."""

from research_stream.client import ResearchStreamClient
from research_stream.config import BackoffPolicy, StreamClientConfig, get_config
from research_stream.errors import (
    AbnormalClosure,
    ConnectionTimeout,
    FrameParseError,
    NotConnected,
    ReconnectExhausted,
    SendFailure,
    SessionLookupError,
    StreamConnectionError,
    StreamError,
    TurnInProgress,
)
from research_stream.models import (
    ConnectionState,
    ConnectionStatus,
    LogEvent,
    LogEventKind,
    QueryRequest,
    QueryTurn,
    TurnStatus,
)
from research_stream.sessions import SessionDirectory, SessionListing
from research_stream.stream import LogAggregator, SessionConnectionManager, StreamingDecoder

__version__ = "0.1.0"

__all__ = [
    # Client
    "ResearchStreamClient",
    "SessionConnectionManager",
    "SessionDirectory",
    "SessionListing",
    "StreamingDecoder",
    "LogAggregator",
    # Config
    "BackoffPolicy",
    "StreamClientConfig",
    "get_config",
    # Models
    "ConnectionState",
    "ConnectionStatus",
    "LogEvent",
    "LogEventKind",
    "QueryRequest",
    "QueryTurn",
    "TurnStatus",
    # Errors
    "AbnormalClosure",
    "ConnectionTimeout",
    "FrameParseError",
    "NotConnected",
    "ReconnectExhausted",
    "SendFailure",
    "SessionLookupError",
    "StreamConnectionError",
    "StreamError",
    "TurnInProgress",
]
