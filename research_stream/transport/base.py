"""Base transport interface for the stream connection.

A transport wraps exactly one duplex, message-oriented connection. It knows
nothing about sessions, queues or reconnects; the connection manager drives it
through four primitives:
1. open(url) - establish the connection (raises TransportError on failure)
2. send(data) - transmit one text frame
3. recv() - wait for the next inbound frame (raises TransportClosed at the end)
4. close(code, reason) - request closure
"""

from abc import ABC, abstractmethod
from urllib.parse import urlencode

NORMAL_CLOSURE = 1000
GOING_AWAY = 1001
ABNORMAL_CLOSURE = 1006  # Reserved: never sent, reported when no close frame arrived


class TransportError(Exception):
    """Base exception for transport failures."""

    pass


class TransportClosed(TransportError):
    """The connection has terminated."""

    def __init__(self, code: int | None = ABNORMAL_CLOSURE, reason: str = ""):
        super().__init__(f"Connection closed: code={code}, reason={reason or 'none'}")
        self.code = code
        self.reason = reason

    @property
    def is_normal(self) -> bool:
        return self.code == NORMAL_CLOSURE


class Transport(ABC):
    """Abstract duplex connection used by the connection manager."""

    @abstractmethod
    async def open(self, url: str) -> None:
        """Open the connection.

        Raises:
            TransportError: If the connection cannot be established
        """
        pass

    @abstractmethod
    async def send(self, data: str) -> None:
        """Send one text frame.

        Raises:
            TransportClosed: If the connection is no longer open
        """
        pass

    @abstractmethod
    async def recv(self) -> str:
        """Wait for the next inbound frame.

        Raises:
            TransportClosed: When the connection terminates, carrying the close code
        """
        pass

    @abstractmethod
    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """Close the connection. Safe to call more than once."""
        pass

    async def abort(self) -> None:
        """Tear the connection down without a closing handshake.

        Override when the underlying library can drop the socket directly.
        """
        await self.close(GOING_AWAY, "Connection aborted")


def with_token(url: str, token: str | None) -> str:
    """Attach a credential to a stream URL as the ``token`` query parameter."""
    if not token:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode({'token': token})}"


def redact_url(url: str, token: str | None) -> str:
    """Hide a credential in a URL before it is logged."""
    if not token:
        return url
    return url.replace(urlencode({"token": token}), "token=[TOKEN]").replace(token, "[TOKEN]")
