"""ResearchStreamClient: the caller-facing side of a research session stream.

Wires the connection manager, the log aggregator and the completion
heuristics together so a caller can submit a prompt and await its turn.
"""

import asyncio
import logging
from collections.abc import Callable

from research_stream.config import StreamClientConfig
from research_stream.errors import ReconnectExhausted, StreamError, TurnInProgress
from research_stream.models import (
    ConnectionState,
    ConnectionStatus,
    LogEvent,
    LogEventKind,
    QueryRequest,
    QueryTurn,
    TurnStatus,
)
from research_stream.stream.aggregator import LogAggregator
from research_stream.stream.manager import EventCallback, SessionConnectionManager, StateCallback
from research_stream.stream.solution import extract_final_output

logger = logging.getLogger(__name__)


class ResearchStreamClient:
    """Submit queries to a research session and collect their streamed logs.

    Completion of a turn is decided two ways:
    - the backend's ``is_complete`` flag, which is authoritative
    - an idle heuristic: no frames for ``idle_timeout`` seconds while the
      connection stays open

    Either way the final output is picked from the logs by
    ``extract_final_output`` (solution block, then keyword line, then last
    line). This is best-effort; the backend gives no stronger guarantee.

    A turn fails when the connection ends for good: a normal close by the
    server, ``disconnect()``, or exhausted reconnects. A transient drop that
    reconnects keeps the turn streaming.

    Example:
        async with ResearchStreamClient() as client:
            await client.connect(session_id)
            turn = await client.query(QueryRequest(prompt="Find CRISPR targets for ..."))
            if turn.status == TurnStatus.COMPLETED:
                print(turn.final_output)
    """

    def __init__(
        self,
        manager: SessionConnectionManager | None = None,
        config: StreamClientConfig | None = None,
        aggregator: LogAggregator | None = None,
    ):
        self.manager = manager or SessionConnectionManager(config=config)
        self.config = config or self.manager.config
        self.aggregator = aggregator or LogAggregator()
        self._session_id: str | None = None
        self._turn_done: asyncio.Future | None = None
        self._idle_handle: asyncio.TimerHandle | None = None

        self.manager.subscribe(self._on_event)
        self.manager.subscribe_state(self._on_state)

    async def __aenter__(self) -> "ResearchStreamClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.disconnect()

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self.manager.state

    @property
    def is_connected(self) -> bool:
        return self.manager.is_connected

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def active_turn(self) -> QueryTurn | None:
        return self.aggregator.active_turn

    @property
    def turn(self) -> QueryTurn | None:
        """The most recent turn, finished or not."""
        return self.aggregator.turn

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        """Receive every decoded stream event."""
        return self.manager.subscribe(callback)

    def subscribe_state(self, callback: StateCallback) -> Callable[[], None]:
        """Receive connection status changes."""
        return self.manager.subscribe_state(callback)

    # =========================================================================
    # Commands
    # =========================================================================

    async def connect(self, session_id: str) -> None:
        """Open (or join) the stream connection for a session."""
        self._session_id = session_id
        await self.manager.connect(session_id)

    async def disconnect(self) -> None:
        """Close the stream. An unfinished turn is marked failed."""
        await self.manager.disconnect()
        self._fail("Disconnected before the query completed")

    async def submit(
        self,
        request: QueryRequest | str,
        cancel_active: bool = False,
    ) -> QueryTurn:
        """Start a new query turn and send its request.

        Args:
            request: The query, or a bare prompt string.
            cancel_active: Cancel a still-running turn instead of refusing.

        Returns:
            The new turn; it keeps filling as logs stream in.

        Raises:
            TurnInProgress: If a turn is active and ``cancel_active`` is False
            NotConnected: If there is no session to connect to
            StreamError: If connecting or sending failed. The turn is
                registered before connecting, so it is marked failed too.
        """
        if isinstance(request, str):
            request = QueryRequest(prompt=request)

        if self.aggregator.active_turn is not None:
            if not cancel_active:
                raise TurnInProgress()
            self.cancel("Superseded by a new query")

        # Registered before any await so a concurrent submit sees it
        turn = self.aggregator.start_turn(request)
        self._turn_done = asyncio.get_running_loop().create_future()

        try:
            # Queue behind an in-flight attempt, otherwise (re)connect first
            if self.state != ConnectionState.CONNECTING and self._session_id:
                await self.manager.connect(self._session_id)
            logger.info(
                f"Submitting query ({len(request.prompt)} chars) to session {self._session_id}"
            )
            await self.manager.send(request)
        except StreamError as e:
            self._fail(str(e))
            raise
        except asyncio.CancelledError:
            self._fail("Submit cancelled")
            raise
        return turn

    async def wait_for_turn(self, timeout: float | None = None) -> QueryTurn:
        """Wait until the current turn completes or fails.

        Raises:
            RuntimeError: If no query has been submitted
            asyncio.TimeoutError: If ``timeout`` elapses first (the turn keeps running)
        """
        if self._turn_done is None or self.aggregator.turn is None:
            raise RuntimeError("No query has been submitted")
        return await asyncio.wait_for(asyncio.shield(self._turn_done), timeout)

    async def query(self, request: QueryRequest | str, timeout: float | None = None) -> QueryTurn:
        """Submit a query and wait for its turn to finish.

        On timeout the turn is cancelled (marked failed) and the timeout error
        propagates.
        """
        await self.submit(request)
        try:
            return await self.wait_for_turn(timeout)
        except asyncio.TimeoutError:
            self.cancel(f"Timed out after {timeout:g} seconds")
            raise

    def cancel(self, reason: str = "Cancelled by caller") -> QueryTurn | None:
        """Abandon the active turn. Logs that arrive later are dropped."""
        return self._fail(reason)

    # =========================================================================
    # Stream callbacks
    # =========================================================================

    def _on_event(self, event: LogEvent) -> None:
        if event.kind == LogEventKind.LOG:
            if self.aggregator.append(event):
                self._reset_idle_timer()
        elif event.kind == LogEventKind.COMPLETION:
            self._complete(event.payload)
        elif event.code == ReconnectExhausted.code:
            self._fail(event.payload)
        else:
            logger.debug(f"Non-fatal stream error: {event.code}: {event.payload}")

    def _on_state(self, status: ConnectionStatus) -> None:
        turn = self.aggregator.active_turn
        if turn is None:
            return
        if status.state == ConnectionState.OPEN:
            # Idle checks are skipped while down; restart the window on reopen
            if turn.logs:
                self._reset_idle_timer()
            return
        if not status.is_terminal:
            return
        error = self.manager.last_error
        if status.state == ConnectionState.DISCONNECTED:
            self._fail("Disconnected before the query completed")
        elif error is not None:
            self._fail(error.message)
        else:
            self._fail(
                f"Connection closed before the query completed "
                f"(code={status.close_code}, reason={status.close_reason or 'none'})"
            )

    # =========================================================================
    # Turn completion
    # =========================================================================

    def _reset_idle_timer(self) -> None:
        self._cancel_idle_timer()
        if self.config.idle_timeout is None:
            return
        loop = asyncio.get_running_loop()
        self._idle_handle = loop.call_later(self.config.idle_timeout, self._on_idle)

    def _cancel_idle_timer(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _on_idle(self) -> None:
        self._idle_handle = None
        turn = self.aggregator.active_turn
        if turn is None or not turn.logs or not self.manager.is_connected:
            return
        logger.info(
            f"No stream activity for {self.config.idle_timeout:g}s, treating turn as complete"
        )
        self._complete(turn.logs[-1])

    def _complete(self, fallback: str) -> QueryTurn | None:
        turn = self.aggregator.active_turn
        if turn is None:
            return None
        extracted = extract_final_output(turn.logs)
        if extracted is None:
            turn = self.aggregator.finalize(TurnStatus.COMPLETED, final_output=fallback)
        else:
            turn = self.aggregator.finalize(
                TurnStatus.COMPLETED,
                final_output=extracted.text,
                is_solution=extracted.is_solution,
            )
        logger.info(
            f"Query completed with {len(turn.logs)} log(s)"
            + (" (solution found)" if turn.is_solution else "")
        )
        self._resolve(turn)
        return turn

    def _fail(self, message: str) -> QueryTurn | None:
        turn = self.aggregator.finalize(TurnStatus.FAILED, error=message)
        if turn is None:
            return None
        logger.warning(f"Query failed: {message}")
        self._resolve(turn)
        return turn

    def _resolve(self, turn: QueryTurn) -> None:
        self._cancel_idle_timer()
        if self._turn_done is not None and not self._turn_done.done():
            self._turn_done.set_result(turn)
