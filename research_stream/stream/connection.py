"""Connection state machine.

The lifecycle of one session connection is a transition table over
``ConnectionState`` driven by ``ConnectionEvent``s. The manager feeds events in
as transport callbacks fire; nothing else mutates the state.

    disconnected --connect--> connecting --opened--> open
    connecting --open_failed--> closed --connect--> connecting
    open --lost--> closed
    connecting/open/closed --close_requested--> closing --closed--> disconnected
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from research_stream.config import BackoffPolicy
from research_stream.errors import InvalidTransition
from research_stream.models import ConnectionState, ConnectionStatus


class ConnectionEvent(str, Enum):
    """Inputs to the connection state machine."""

    CONNECT = "connect"  # Manager starts an attempt
    OPENED = "opened"  # Transport reported open and the queue is flushed
    OPEN_FAILED = "open_failed"  # Attempt errored or timed out
    LOST = "lost"  # Open connection terminated without a client request
    CLOSE_REQUESTED = "close_requested"  # Client asked for closure
    CLOSED = "closed"  # Requested closure finished


TRANSITIONS: dict[tuple[ConnectionState, ConnectionEvent], ConnectionState] = {
    (ConnectionState.DISCONNECTED, ConnectionEvent.CONNECT): ConnectionState.CONNECTING,
    (ConnectionState.CLOSED, ConnectionEvent.CONNECT): ConnectionState.CONNECTING,
    (ConnectionState.CONNECTING, ConnectionEvent.OPENED): ConnectionState.OPEN,
    (ConnectionState.CONNECTING, ConnectionEvent.OPEN_FAILED): ConnectionState.CLOSED,
    (ConnectionState.CONNECTING, ConnectionEvent.CLOSE_REQUESTED): ConnectionState.CLOSING,
    (ConnectionState.OPEN, ConnectionEvent.LOST): ConnectionState.CLOSED,
    (ConnectionState.OPEN, ConnectionEvent.CLOSE_REQUESTED): ConnectionState.CLOSING,
    (ConnectionState.CLOSED, ConnectionEvent.CLOSE_REQUESTED): ConnectionState.CLOSING,
    (ConnectionState.CLOSING, ConnectionEvent.CLOSED): ConnectionState.DISCONNECTED,
}


def next_state(state: ConnectionState, event: ConnectionEvent) -> ConnectionState:
    """Look up the state reached from ``state`` on ``event``.

    Raises:
        InvalidTransition: If the table has no entry for the pair
    """
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransition(state.value, event.value) from None


@dataclass
class PendingFrame:
    """An outbound frame waiting for the connection to open."""

    data: str
    sent: asyncio.Future


@dataclass
class Connection:
    """Mutable state of one session's connection. Owned by the manager."""

    session_id: str
    policy: BackoffPolicy = field(default_factory=BackoffPolicy)
    state: ConnectionState = ConnectionState.DISCONNECTED
    close_code: int | None = None
    close_reason: str | None = None
    reconnect_attempts: int = 0
    backoff: float = 0.0
    outbound_queue: deque[PendingFrame] = field(default_factory=deque)

    def __post_init__(self) -> None:
        self.backoff = self.policy.initial_delay

    def apply(
        self,
        event: ConnectionEvent,
        code: int | None = None,
        reason: str | None = None,
    ) -> ConnectionState:
        """Advance the state machine and record close details."""
        self.state = next_state(self.state, event)
        if self.state == ConnectionState.CLOSED:
            self.close_code = code
            self.close_reason = reason
        elif self.state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            self.close_code = None
            self.close_reason = None
        elif self.state == ConnectionState.DISCONNECTED:
            self.close_code = code
            self.close_reason = reason
        return self.state

    @property
    def reconnects_exhausted(self) -> bool:
        return self.reconnect_attempts >= self.policy.max_attempts

    def next_reconnect_delay(self) -> float | None:
        """Consume one reconnect attempt and return its delay.

        Returns None once every attempt has been used.
        """
        if self.reconnects_exhausted:
            return None
        self.reconnect_attempts += 1
        delay = self.backoff
        self.backoff = min(self.backoff * self.policy.multiplier, self.policy.max_delay)
        return delay

    def reset_backoff(self) -> None:
        self.reconnect_attempts = 0
        self.backoff = self.policy.initial_delay

    def status(self, reconnecting: bool = False) -> ConnectionStatus:
        """Snapshot for state subscribers."""
        return ConnectionStatus(
            state=self.state,
            session_id=self.session_id,
            reconnect_attempts=self.reconnect_attempts,
            reconnecting=reconnecting,
            close_code=self.close_code,
            close_reason=self.close_reason,
        )
