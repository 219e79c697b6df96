"""Accumulation of log events for the current query turn."""

import logging
from datetime import datetime

from research_stream.models import LogEvent, LogEventKind, QueryRequest, QueryTurn, TurnStatus

logger = logging.getLogger(__name__)


class LogAggregator:
    """Collects the logs of one query turn at a time.

    Logs are kept in arrival order with no reordering and no deduplication:
    the backend sends no sequence numbers, so frames replayed after a
    reconnect are kept as-is. ``append`` is synchronous and never blocks, so it
    is safe to call straight from the stream's read loop.
    """

    def __init__(self) -> None:
        self._turn: QueryTurn | None = None

    @property
    def turn(self) -> QueryTurn | None:
        """The most recent turn, finished or not."""
        return self._turn

    @property
    def active_turn(self) -> QueryTurn | None:
        """The turn currently accepting logs, if any."""
        if self._turn is not None and self._turn.is_active:
            return self._turn
        return None

    @property
    def logs(self) -> list[str]:
        return list(self._turn.logs) if self._turn else []

    def start_turn(self, request: QueryRequest | None = None) -> QueryTurn:
        """Begin a new turn, discarding any unfinished one."""
        if self.active_turn is not None:
            logger.info(
                f"Discarding unfinished turn with {len(self._turn.logs)} log(s)"
            )
        self._turn = QueryTurn(request=request)
        return self._turn

    def append(self, event: LogEvent) -> bool:
        """Append a log event to the active turn.

        Returns:
            True if the event was recorded, False if it was dropped
        """
        turn = self.active_turn
        if turn is None:
            logger.debug("Dropping log event received with no active turn")
            return False
        if event.kind != LogEventKind.LOG:
            return False
        turn.logs.append(event.payload)
        turn.status = TurnStatus.STREAMING
        return True

    def finalize(
        self,
        status: TurnStatus,
        final_output: str | None = None,
        is_solution: bool = False,
        error: str | None = None,
    ) -> QueryTurn | None:
        """Freeze the active turn with its outcome.

        Returns:
            The finalized turn, or None if no turn was active
        """
        turn = self.active_turn
        if turn is None:
            return None
        if status not in (TurnStatus.COMPLETED, TurnStatus.FAILED):
            raise ValueError(f"Cannot finalize a turn as '{status.value}'")

        turn.status = status
        turn.finished_at = datetime.now()
        if status == TurnStatus.COMPLETED:
            turn.final_output = final_output
            turn.is_solution = is_solution
        else:
            turn.error = error or "Query failed"
        return turn

    def clear(self) -> None:
        """Forget the current turn entirely."""
        self._turn = None
