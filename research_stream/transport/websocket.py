"""WebSocket transport backed by the ``websockets`` library."""

import logging

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from research_stream.transport.base import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    Transport,
    TransportClosed,
    TransportError,
)

logger = logging.getLogger(__name__)

# Agent logs can carry whole tool outputs
MAX_FRAME_SIZE = 16 * 1024 * 1024


def _closed_from(exc: ConnectionClosed) -> TransportClosed:
    """Translate a websockets closure into a TransportClosed."""
    if exc.rcvd is not None:
        return TransportClosed(exc.rcvd.code, exc.rcvd.reason)
    return TransportClosed(ABNORMAL_CLOSURE, "")


class WebSocketTransport(Transport):
    """One client WebSocket connection."""

    def __init__(self, max_size: int = MAX_FRAME_SIZE, close_timeout: float = 5.0) -> None:
        self._max_size = max_size
        self._close_timeout = close_timeout
        self._ws = None

    async def open(self, url: str) -> None:
        # The manager enforces its own connect deadline
        try:
            self._ws = await websockets.connect(
                url,
                max_size=self._max_size,
                open_timeout=None,
                close_timeout=self._close_timeout,
            )
        except ConnectionClosed as e:
            raise _closed_from(e) from e
        except (InvalidURI, InvalidHandshake, OSError) as e:
            raise TransportError(f"WebSocket connection error: {e}") from e

    async def send(self, data: str) -> None:
        if self._ws is None:
            raise TransportClosed(ABNORMAL_CLOSURE, "Not open")
        try:
            await self._ws.send(data)
        except ConnectionClosed as e:
            raise _closed_from(e) from e

    async def recv(self) -> str:
        if self._ws is None:
            raise TransportClosed(ABNORMAL_CLOSURE, "Not open")
        try:
            message = await self._ws.recv()
        except ConnectionClosed as e:
            raise _closed_from(e) from e
        if isinstance(message, bytes):
            return message.decode("utf-8", errors="replace")
        return message

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        if self._ws is None:
            return
        ws, self._ws = self._ws, None
        try:
            await ws.close(code=code, reason=reason)
        except Exception as e:
            logger.warning(f"Error closing WebSocket: {e}")

    async def abort(self) -> None:
        if self._ws is None:
            return
        ws, self._ws = self._ws, None
        ws.transport.abort()
