"""Tests for the connection state machine."""

import pytest

from research_stream.config import BackoffPolicy
from research_stream.errors import InvalidTransition
from research_stream.models import ConnectionState
from research_stream.stream.connection import Connection, ConnectionEvent, next_state


class TestTransitions:
    """Tests for the transition table."""

    def test_happy_path(self):
        """Test connect, open, close, disconnect."""
        conn = Connection(session_id="s1")

        assert conn.apply(ConnectionEvent.CONNECT) == ConnectionState.CONNECTING
        assert conn.apply(ConnectionEvent.OPENED) == ConnectionState.OPEN
        assert conn.apply(ConnectionEvent.CLOSE_REQUESTED) == ConnectionState.CLOSING
        assert conn.apply(ConnectionEvent.CLOSED, code=1000) == ConnectionState.DISCONNECTED
        assert conn.close_code == 1000

    def test_lost_then_reconnect(self):
        """Test a lost connection can connect again."""
        conn = Connection(session_id="s1")
        conn.apply(ConnectionEvent.CONNECT)
        conn.apply(ConnectionEvent.OPENED)

        conn.apply(ConnectionEvent.LOST, code=1006, reason="gone")
        assert conn.state == ConnectionState.CLOSED
        assert conn.close_code == 1006
        assert conn.close_reason == "gone"

        conn.apply(ConnectionEvent.CONNECT)
        assert conn.state == ConnectionState.CONNECTING
        assert conn.close_code is None

    def test_failed_open(self):
        """Test a failed attempt lands in closed."""
        assert next_state(ConnectionState.CONNECTING, ConnectionEvent.OPEN_FAILED) == (
            ConnectionState.CLOSED
        )

    @pytest.mark.parametrize(
        "state,event",
        [
            (ConnectionState.DISCONNECTED, ConnectionEvent.OPENED),
            (ConnectionState.OPEN, ConnectionEvent.CONNECT),
            (ConnectionState.CLOSING, ConnectionEvent.CONNECT),
            (ConnectionState.DISCONNECTED, ConnectionEvent.LOST),
        ],
    )
    def test_invalid_transitions(self, state, event):
        """Test pairs missing from the table are rejected."""
        with pytest.raises(InvalidTransition) as exc_info:
            next_state(state, event)

        assert exc_info.value.state == state.value
        assert exc_info.value.event == event.value


class TestReconnectAttempts:
    """Tests for backoff bookkeeping."""

    def test_delays_double(self):
        """Test delays of 1, 2, 4 and then exhaustion."""
        conn = Connection(session_id="s1")

        delays = [conn.next_reconnect_delay() for _ in range(4)]

        assert delays == [1.0, 2.0, 4.0, None]
        assert conn.reconnects_exhausted
        assert conn.reconnect_attempts == 3

    def test_delay_capped(self):
        """Test the delay never exceeds max_delay."""
        policy = BackoffPolicy(initial_delay=5.0, max_delay=8.0, max_attempts=3)
        conn = Connection(session_id="s1", policy=policy)

        assert [conn.next_reconnect_delay() for _ in range(3)] == [5.0, 8.0, 8.0]

    def test_reset(self):
        """Test reset restores every attempt."""
        conn = Connection(session_id="s1")
        conn.next_reconnect_delay()
        conn.next_reconnect_delay()

        conn.reset_backoff()

        assert conn.reconnect_attempts == 0
        assert conn.next_reconnect_delay() == 1.0

    def test_status_snapshot(self):
        """Test the status reflects the connection."""
        conn = Connection(session_id="s1")
        conn.apply(ConnectionEvent.CONNECT)
        conn.next_reconnect_delay()

        status = conn.status(reconnecting=True)

        assert status.state == ConnectionState.CONNECTING
        assert status.session_id == "s1"
        assert status.reconnect_attempts == 1
        assert status.reconnecting
        assert not status.is_terminal
