"""Tests for the error taxonomy and models."""

import pytest
from pydantic import ValidationError

from research_stream.errors import (
    AbnormalClosure,
    ConnectionTimeout,
    NotConnected,
    ReconnectExhausted,
    StreamConnectionError,
    StreamError,
)
from research_stream.models import ConnectionState, ConnectionStatus, LogEvent, QueryRequest


class TestErrors:
    """Tests for StreamError subclasses."""

    def test_codes(self):
        assert ConnectionTimeout(10).code == "TIMEOUT"
        assert StreamConnectionError().code == "CONNECTION_ERROR"
        assert NotConnected().code == "NOT_CONNECTED"

    def test_retriable_flags(self):
        assert ConnectionTimeout(10).retriable
        assert StreamConnectionError().retriable
        assert not StreamConnectionError("bad url", retriable=False).retriable
        assert not ReconnectExhausted(3).retriable

    def test_messages(self):
        assert ConnectionTimeout(10).message == "Stream connection timed out after 10 seconds"
        assert AbnormalClosure(1006).message == "Connection closed abnormally: code=1006, reason=none"
        assert str(ReconnectExhausted(3)) == "Gave up reconnecting after 3 attempt(s)"

    def test_hierarchy(self):
        assert isinstance(AbnormalClosure(1011, "boom"), StreamError)


class TestModels:
    """Tests for wire and status models."""

    def test_query_request_wire(self):
        request = QueryRequest(prompt="p", model="claude", source="anthropic")

        assert request.to_wire() == {
            "message": "p",
            "self_critic": False,
            "use_tool_retriever": True,
            "model": "claude",
            "source": "anthropic",
        }

    def test_query_request_frozen(self):
        request = QueryRequest(prompt="p")

        with pytest.raises(ValidationError):
            request.prompt = "changed"

    def test_error_event(self):
        event = LogEvent.error("TIMEOUT", "too slow", session_id="s1")

        assert event.is_error
        assert event.code == "TIMEOUT"
        assert event.session_id == "s1"

    def test_terminal_status(self):
        assert ConnectionStatus(state=ConnectionState.CLOSED).is_terminal
        assert not ConnectionStatus(state=ConnectionState.CLOSED, reconnecting=True).is_terminal
        assert not ConnectionStatus(state=ConnectionState.OPEN).is_terminal
