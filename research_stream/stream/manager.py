"""SessionConnectionManager owns the stream connection of one session."""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from research_stream.config import StreamClientConfig, get_config
from research_stream.errors import (
    AbnormalClosure,
    ConnectionTimeout,
    NotConnected,
    ReconnectExhausted,
    SendFailure,
    StreamConnectionError,
    StreamError,
)
from research_stream.models import ConnectionState, ConnectionStatus, LogEvent, QueryRequest
from research_stream.stream.connection import Connection, ConnectionEvent, PendingFrame
from research_stream.stream.decoder import StreamingDecoder
from research_stream.transport import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    CredentialSource,
    Transport,
    TransportClosed,
    TransportError,
    WebSocketTransport,
    default_credential_source,
    redact_url,
    with_token,
)

logger = logging.getLogger(__name__)

EventCallback = Callable[[LogEvent], None]
StateCallback = Callable[[ConnectionStatus], None]
TransportFactory = Callable[[], Transport]
SleepFunc = Callable[[float], Awaitable[Any]]


def _consume_result(future: asyncio.Future) -> None:
    # Reconnect attempts may fail with nobody awaiting them
    if not future.cancelled():
        future.exception()


class SessionConnectionManager:
    """Manages the lifecycle of a session's stream connection.

    Responsibilities:
    - Open one transport per session, authenticated with a URL token
    - Queue outbound frames while the connection is being established
    - Reconnect with exponential backoff after abnormal closures
    - Decode inbound frames and publish them to subscribers
    - Publish connection state changes

    The manager is the only owner of the transport. Callers use ``connect``,
    ``send`` and ``disconnect`` and subscribe to decoded events and state.
    """

    def __init__(
        self,
        config: StreamClientConfig | None = None,
        credentials: CredentialSource | None = None,
        transport_factory: TransportFactory | None = None,
        decoder: StreamingDecoder | None = None,
        sleep: SleepFunc | None = None,
    ):
        """Initialize the manager.

        Args:
            config: Client settings. Defaults to the environment-derived config.
            credentials: Source of the auth token attached to each connection.
            transport_factory: Builds a fresh transport for every attempt.
            decoder: Decoder for inbound frames.
            sleep: Coroutine used to wait out reconnect backoff.
        """
        self.config = config or get_config()
        self._credentials = credentials or default_credential_source()
        self._transport_factory = transport_factory or WebSocketTransport
        self._decoder = decoder or StreamingDecoder()
        self._sleep = sleep or asyncio.sleep

        self._connection: Connection | None = None
        self._transport: Transport | None = None
        self._attempt: asyncio.Future | None = None
        self._attempt_task: asyncio.Task | None = None
        self._reader_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._close_task: asyncio.Task | None = None

        self._event_callbacks: list[EventCallback] = []
        self._state_callbacks: list[StateCallback] = []
        self.last_error: StreamError | None = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        if self._connection is None:
            return ConnectionState.DISCONNECTED
        return self._connection.state

    @property
    def session_id(self) -> str | None:
        return self._connection.session_id if self._connection else None

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.OPEN

    @property
    def reconnect_pending(self) -> bool:
        """Whether a reconnect attempt is scheduled."""
        return self._reconnect_task is not None and not self._reconnect_task.done()

    @property
    def status(self) -> ConnectionStatus:
        if self._connection is None:
            return ConnectionStatus(state=ConnectionState.DISCONNECTED)
        return self._connection.status(reconnecting=self.reconnect_pending)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Receive every decoded event. Returns an unsubscribe function."""
        self._event_callbacks.append(callback)
        return lambda: self._remove(self._event_callbacks, callback)

    def subscribe_state(self, callback: StateCallback) -> Callable[[], None]:
        """Receive a status snapshot on every state change. Returns an unsubscribe function."""
        self._state_callbacks.append(callback)
        return lambda: self._remove(self._state_callbacks, callback)

    @staticmethod
    def _remove(callbacks: list, callback: Callable) -> None:
        if callback in callbacks:
            callbacks.remove(callback)

    def _emit(self, event: LogEvent) -> None:
        for callback in list(self._event_callbacks):
            try:
                callback(event)
            except Exception as e:
                logger.exception(f"Error in stream event callback: {e}")

    def _apply(
        self,
        event: ConnectionEvent,
        code: int | None = None,
        reason: str | None = None,
    ) -> None:
        """Advance the state machine and publish the new status."""
        self._connection.apply(event, code=code, reason=reason)
        status = self.status
        logger.debug(f"Stream state -> {status.state.value} ({event.value})")
        for callback in list(self._state_callbacks):
            try:
                callback(status)
            except Exception as e:
                logger.exception(f"Error in stream state callback: {e}")

    # =========================================================================
    # Commands
    # =========================================================================

    async def connect(self, session_id: str) -> None:
        """Ensure an open connection for ``session_id``.

        Idempotent: returns at once if already open, and joins the in-flight
        attempt if one is running, so at most one transport exists per session.

        Raises:
            ConnectionTimeout: If the attempt exceeded ``connect_timeout``
            StreamConnectionError: If the transport failed to open
        """
        if not session_id:
            raise ValueError("Session ID is required for a stream connection")

        conn = self._connection
        if conn is not None and conn.session_id != session_id:
            logger.info(f"Switching stream from session {conn.session_id} to {session_id}")
            await self.disconnect()
            conn = None

        if conn is not None and conn.state == ConnectionState.CLOSING and self._close_task:
            await asyncio.shield(self._close_task)

        if conn is not None and conn.state == ConnectionState.OPEN:
            return

        if conn is not None and conn.state == ConnectionState.CONNECTING and self._attempt:
            await asyncio.shield(self._attempt)
            return

        # An explicit connect resets the reconnect attempt count
        self._cancel_reconnect()
        if conn is None:
            conn = Connection(session_id=session_id, policy=self.config.backoff)
            self._connection = conn
        else:
            conn.reset_backoff()

        attempt = self._start_attempt(reconnecting=False)
        await asyncio.shield(attempt)

    async def send(self, payload: QueryRequest | dict[str, Any] | str) -> None:
        """Send a frame.

        Sent immediately when open. While connecting, the frame is queued and
        this call completes once it has been flushed after the connection opens.

        Raises:
            NotConnected: If there is no open or opening connection
            SendFailure: If the transport rejected the frame, or the attempt
                failed before it could be flushed
        """
        if isinstance(payload, QueryRequest):
            data = json.dumps(payload.to_wire())
        elif isinstance(payload, dict):
            data = json.dumps(payload)
        else:
            data = payload

        state = self.state
        if state == ConnectionState.OPEN and self._transport is not None:
            await self._transmit(self._transport, data)
            return

        if state == ConnectionState.CONNECTING:
            sent = asyncio.get_running_loop().create_future()
            self._connection.outbound_queue.append(PendingFrame(data=data, sent=sent))
            logger.debug(
                f"Queued message while connecting ({len(self._connection.outbound_queue)} pending)"
            )
            await sent
            return

        raise NotConnected(f"Stream is not connected (state: {state.value})")

    async def disconnect(self) -> None:
        """Close the connection normally and stop any reconnects."""
        self._cancel_reconnect()
        conn = self._connection
        if conn is None or conn.state == ConnectionState.DISCONNECTED:
            return
        if conn.state != ConnectionState.CLOSING or self._close_task is None:
            self._close_task = asyncio.create_task(self._close())
        await asyncio.shield(self._close_task)

    # =========================================================================
    # Connection attempts
    # =========================================================================

    def _start_attempt(self, reconnecting: bool) -> asyncio.Future:
        attempt = asyncio.get_running_loop().create_future()
        attempt.add_done_callback(_consume_result)
        self._attempt = attempt
        self._apply(ConnectionEvent.CONNECT)
        self._attempt_task = asyncio.create_task(self._run_attempt(attempt, reconnecting))
        return attempt

    async def _run_attempt(self, attempt: asyncio.Future, reconnecting: bool) -> None:
        conn = self._connection
        transport = self._transport_factory()
        self._transport = transport

        token = self._credentials.get_token()
        if not token:
            logger.warning("No auth token found. Connection may be rejected by backend.")
        url = with_token(self.config.stream_url(conn.session_id), token)

        if reconnecting:
            logger.info(
                f"Reconnecting to {redact_url(url, token)} "
                f"(attempt {conn.reconnect_attempts}/{conn.policy.max_attempts})"
            )
        else:
            logger.info(f"Connecting to {redact_url(url, token)}")

        try:
            await asyncio.wait_for(transport.open(url), timeout=self.config.connect_timeout)
            await self._flush_queue(transport)
        except asyncio.TimeoutError:
            await transport.abort()
            error: StreamError = ConnectionTimeout(self.config.connect_timeout)
        except TransportError as e:
            await transport.abort()
            error = StreamConnectionError(f"Stream connection error: {e}")
        else:
            self._on_open(transport, attempt)
            return

        self._on_attempt_failed(transport, attempt, error, reconnecting)

    def _on_open(self, transport: Transport, attempt: asyncio.Future) -> None:
        conn = self._connection
        conn.reset_backoff()
        self.last_error = None
        self._attempt_task = None
        self._apply(ConnectionEvent.OPENED)
        logger.info(f"Stream connected for session {conn.session_id}")
        self._reader_task = asyncio.create_task(self._read_loop(transport))
        if not attempt.done():
            attempt.set_result(None)

    def _on_attempt_failed(
        self,
        transport: Transport,
        attempt: asyncio.Future,
        error: StreamError,
        reconnecting: bool,
    ) -> None:
        conn = self._connection
        if self._transport is transport:
            self._transport = None
        self._attempt_task = None
        self.last_error = error
        logger.warning(f"Stream connection attempt failed: {error.message}")

        self._fail_queue(SendFailure(f"Message not sent: {error.message}"))
        self._emit(LogEvent.error(error.code, error.message, session_id=conn.session_id))

        # Timeouts on an explicit connect are left to the caller to retry
        if reconnecting or isinstance(error, StreamConnectionError):
            self._schedule_reconnect()

        self._apply(ConnectionEvent.OPEN_FAILED, reason=error.message)
        if not attempt.done():
            attempt.set_exception(error)

    async def _flush_queue(self, transport: Transport) -> None:
        """Send frames queued while connecting, oldest first, exactly once."""
        queue = self._connection.outbound_queue
        if queue:
            logger.info(f"Flushing {len(queue)} queued message(s)")
        while queue:
            frame = queue.popleft()
            if frame.sent.done():
                continue  # Sender gave up waiting
            try:
                await transport.send(frame.data)
            except TransportError as e:
                failure = SendFailure(f"Failed to send queued message: {e}")
                frame.sent.set_exception(failure)
                self._fail_queue(failure)
                raise
            frame.sent.set_result(None)

    def _fail_queue(self, error: StreamError) -> None:
        queue = self._connection.outbound_queue
        if queue:
            logger.warning(f"Dropping {len(queue)} queued message(s): {error.message}")
        while queue:
            frame = queue.popleft()
            if not frame.sent.done():
                frame.sent.set_exception(error)

    async def _transmit(self, transport: Transport, data: str) -> None:
        try:
            await transport.send(data)
        except TransportError as e:
            logger.error(f"Failed to send stream message: {e}")
            raise SendFailure(f"Failed to send message: {e}") from e

    # =========================================================================
    # Inbound frames and closure
    # =========================================================================

    async def _read_loop(self, transport: Transport) -> None:
        """Deliver inbound frames until the transport closes."""
        while True:
            try:
                raw = await transport.recv()
            except TransportClosed as closed:
                self._handle_closed(transport, closed)
                return
            except TransportError as e:
                self._handle_closed(transport, TransportClosed(ABNORMAL_CLOSURE, str(e)))
                return

            if transport is not self._transport:
                return
            for event in self._decoder.decode(raw):
                self._emit(event)

    def _handle_closed(self, transport: Transport, closed: TransportClosed) -> None:
        if transport is not self._transport:
            return  # Stale transport from an earlier connection
        conn = self._connection
        self._transport = None
        self._reader_task = None
        if conn.state != ConnectionState.OPEN:
            return

        logger.info(f"Stream closed: code={closed.code}, reason={closed.reason or 'none'}")
        if closed.is_normal:
            self._apply(ConnectionEvent.LOST, code=closed.code, reason=closed.reason)
            return

        error = AbnormalClosure(closed.code, closed.reason)
        self.last_error = error
        logger.warning(error.message)
        self._emit(LogEvent.error(error.code, error.message, session_id=conn.session_id))
        self._schedule_reconnect()
        self._apply(ConnectionEvent.LOST, code=closed.code, reason=closed.reason)

    # =========================================================================
    # Reconnection
    # =========================================================================

    def _schedule_reconnect(self) -> bool:
        """Schedule the next reconnect attempt.

        Returns:
            False if no reconnect attempts remain
        """
        conn = self._connection
        delay = conn.next_reconnect_delay()
        if delay is None:
            error = ReconnectExhausted(conn.reconnect_attempts)
            self.last_error = error
            logger.error(f"{error.message} for session {conn.session_id}")
            self._emit(LogEvent.error(error.code, error.message, session_id=conn.session_id))
            return False

        logger.info(
            f"Reconnecting in {delay:g}s "
            f"(attempt {conn.reconnect_attempts}/{conn.policy.max_attempts})"
        )
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))
        return True

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._reconnect_task = None
        conn = self._connection
        if conn is None or conn.state != ConnectionState.CLOSED:
            return
        self._start_attempt(reconnecting=True)

    def _cancel_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            logger.info("Cancelled pending reconnect")
        self._reconnect_task = None

    # =========================================================================
    # Closing
    # =========================================================================

    async def _close(self) -> None:
        conn = self._connection
        self._apply(ConnectionEvent.CLOSE_REQUESTED)
        transport, self._transport = self._transport, None

        for task in (self._attempt_task, self._reader_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._attempt_task = None
        self._reader_task = None

        self._fail_queue(SendFailure("Message not sent: stream disconnected"))
        if self._attempt is not None and not self._attempt.done():
            self._attempt.set_exception(NotConnected("Disconnected before the connection opened"))

        if transport is not None:
            await transport.close(NORMAL_CLOSURE, "Client disconnecting")

        conn.reset_backoff()
        self._apply(ConnectionEvent.CLOSED, code=NORMAL_CLOSURE, reason="Client disconnecting")
        logger.info(f"Stream disconnected for session {conn.session_id}")
