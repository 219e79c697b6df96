"""Streaming core: connection lifecycle, frame decoding and log aggregation.

This module provides:
- SessionConnectionManager: Owns one session's connection and its reconnects
- Connection: The connection state machine
- StreamingDecoder: Inbound frames -> LogEvents
- LogAggregator: Ordered logs of the current query turn
- extract_final_output / split_sections: Helpers over accumulated log text
"""

from research_stream.stream.aggregator import LogAggregator
from research_stream.stream.connection import Connection, ConnectionEvent, next_state
from research_stream.stream.decoder import StreamingDecoder
from research_stream.stream.manager import SessionConnectionManager
from research_stream.stream.sections import LogSection, SectionKind, clean_log_text, split_sections
from research_stream.stream.solution import (
    ExtractedOutput,
    extract_final_output,
    has_solution_block,
    normalize_solution,
)

__all__ = [
    "Connection",
    "ConnectionEvent",
    "ExtractedOutput",
    "LogAggregator",
    "LogSection",
    "SectionKind",
    "SessionConnectionManager",
    "StreamingDecoder",
    "clean_log_text",
    "extract_final_output",
    "has_solution_block",
    "next_state",
    "normalize_solution",
    "split_sections",
]
