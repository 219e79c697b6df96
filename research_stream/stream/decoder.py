"""Decoding of inbound stream frames into LogEvents."""

import logging

from pydantic import ValidationError

from research_stream.errors import FrameParseError
from research_stream.models import InboundFrame, LogEvent, LogEventKind
from research_stream.models.event import utc_timestamp

logger = logging.getLogger(__name__)


class StreamingDecoder:
    """Turns raw frames into events.

    Each valid frame yields a log event carrying its output. A frame flagged
    ``is_complete`` also yields a completion event; that flag is the only
    completion signal the transport itself provides. A frame that cannot be
    parsed yields a single error event with code ``PARSE_ERROR`` so the stream
    can carry on.
    """

    def __init__(self) -> None:
        self.frames_decoded = 0
        self.parse_errors = 0

    def decode(self, raw: str | bytes) -> list[LogEvent]:
        """Decode one inbound frame."""
        try:
            frame = self.parse(raw)
        except FrameParseError as e:
            self.parse_errors += 1
            preview = e.raw[:200] if e.raw else ""
            logger.warning(f"{e.message}: {preview!r}")
            return [LogEvent.error(FrameParseError.code, e.message)]

        self.frames_decoded += 1
        timestamp = frame.timestamp or utc_timestamp()
        events = [
            LogEvent(
                kind=LogEventKind.LOG,
                payload=frame.output,
                timestamp=timestamp,
                step=frame.step,
                session_id=frame.session_id,
            )
        ]
        if frame.is_complete:
            events.append(
                LogEvent(
                    kind=LogEventKind.COMPLETION,
                    payload=frame.output,
                    timestamp=timestamp,
                    step=frame.step,
                    session_id=frame.session_id,
                )
            )
        return events

    @staticmethod
    def parse(raw: str | bytes) -> InboundFrame:
        """Validate a raw frame against the inbound wire format.

        Raises:
            FrameParseError: If the frame is not a JSON object of the expected shape
        """
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        try:
            return InboundFrame.model_validate_json(text)
        except ValidationError as e:
            raise FrameParseError(
                f"Failed to parse stream message ({e.error_count()} error(s))", raw=text
            ) from e
