"""Error taxonomy for the stream client.

Every error carries a stable ``code`` (mirrored into error events sent to
subscribers) and a ``retriable`` flag telling callers whether re-issuing the
operation can succeed.
"""

from typing import Any


class StreamError(Exception):
    """Base exception for stream client errors."""

    code = "STREAM_ERROR"

    def __init__(self, message: str, retriable: bool = False):
        super().__init__(message)
        self.message = message
        self.retriable = retriable


class ConnectionTimeout(StreamError):
    """Connection attempt exceeded its deadline."""

    code = "TIMEOUT"

    def __init__(self, timeout: float):
        super().__init__(
            f"Stream connection timed out after {timeout:g} seconds", retriable=True
        )
        self.timeout = timeout


class StreamConnectionError(StreamError):
    """Transport-level failure while opening a connection."""

    code = "CONNECTION_ERROR"

    def __init__(self, message: str = "Stream connection error", **kwargs: Any):
        kwargs.setdefault("retriable", True)
        super().__init__(message, **kwargs)


class AbnormalClosure(StreamError):
    """Connection closed without the client asking for it."""

    code = "ABNORMAL_CLOSURE"

    def __init__(self, close_code: int | None, reason: str = ""):
        super().__init__(
            f"Connection closed abnormally: code={close_code}, reason={reason or 'none'}",
            retriable=True,
        )
        self.close_code = close_code
        self.reason = reason


class ReconnectExhausted(StreamError):
    """All reconnect attempts failed; a new explicit connect is required."""

    code = "RECONNECT_EXHAUSTED"

    def __init__(self, attempts: int):
        super().__init__(f"Gave up reconnecting after {attempts} attempt(s)")
        self.attempts = attempts


class NotConnected(StreamError):
    """Send attempted without a usable connection."""

    code = "NOT_CONNECTED"

    def __init__(self, message: str = "Stream is not connected"):
        super().__init__(message)


class FrameParseError(StreamError):
    """Inbound frame could not be decoded."""

    code = "PARSE_ERROR"

    def __init__(self, message: str = "Failed to parse stream message", raw: str | None = None):
        super().__init__(message)
        self.raw = raw


class SendFailure(StreamError):
    """Transport rejected an outbound frame, or the frame was dropped unsent."""

    code = "SEND_FAILURE"


class TurnInProgress(StreamError):
    """A query turn is still active for this session."""

    code = "TURN_IN_PROGRESS"

    def __init__(self, message: str = "A query is already in progress for this session"):
        super().__init__(message)


class SessionLookupError(StreamError):
    """Could not resolve a session id from the backend."""

    code = "SESSION_LOOKUP"


class InvalidTransition(StreamError):
    """The connection state machine was asked for a transition it does not allow."""

    code = "INVALID_TRANSITION"

    def __init__(self, state: str, event: str):
        super().__init__(f"No transition from '{state}' on '{event}'")
        self.state = state
        self.event = event
