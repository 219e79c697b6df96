#!/usr/bin/env python3
"""CLI for streaming a single query to a research agent session.

Usage:
    research-stream --prompt "Which genes are differentially expressed in ..."

Examples:
    # Use the first active session on the backend
    research-stream --prompt "Summarize the attached dataset"

    # Explicit session, self-critic enabled, final output only
    research-stream --session 3f2a9c --prompt "Design a CRISPR screen" \
        --self-critic --quiet

    # Point at a different backend
    RESEARCH_API_BASE_URL=https://api.example.org research-stream --prompt "..."
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime

from research_stream.client import ResearchStreamClient
from research_stream.config import StreamClientConfig
from research_stream.errors import StreamError
from research_stream.models import LogEvent, LogEventKind, QueryRequest, TurnStatus
from research_stream.sessions import SessionDirectory
from research_stream.stream.sections import SectionKind, split_sections


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"


SECTION_COLORS = {
    SectionKind.PLAN: Colors.BLUE,
    SectionKind.EXECUTE: Colors.YELLOW,
    SectionKind.OBSERVATION: Colors.MAGENTA,
    SectionKind.TEXT: Colors.RESET,
}


def colorize(text: str, color: str) -> str:
    """Apply ANSI color to text."""
    return f"{color}{text}{Colors.RESET}"


def out(text: str = "") -> None:
    """Print with immediate flush for non-TTY environments."""
    print(text, flush=True)


def configure_logging() -> None:
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )


def print_event(event: LogEvent) -> None:
    """Print a stream event to the console with formatting."""
    timestamp = datetime.now().strftime("%H:%M:%S")
    prefix = colorize(f"[{timestamp}] ", Colors.DIM)

    if event.kind == LogEventKind.LOG:
        sections = split_sections(event.payload)
        if not sections:
            return
        for section in sections:
            label = colorize(f"{section.kind.value}: ", Colors.BOLD)
            out(prefix + label + colorize(section.content, SECTION_COLORS[section.kind]))

    elif event.kind == LogEventKind.COMPLETION:
        out(prefix + colorize("=== Stream complete ===", Colors.GREEN + Colors.BOLD))

    elif event.kind == LogEventKind.ERROR:
        out(prefix + colorize(f"{event.code}: {event.payload}", Colors.RED))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Stream a query to a research agent session",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--prompt", "-p",
        required=True,
        help="Prompt to send to the agent",
    )
    parser.add_argument(
        "--session", "-s",
        default=None,
        help="Session ID (default: first active session on the backend)",
    )
    parser.add_argument(
        "--self-critic",
        action="store_true",
        help="Ask the agent to critique its own answer",
    )
    parser.add_argument(
        "--model", "-m",
        default=None,
        help="Model override for this query",
    )
    parser.add_argument(
        "--source",
        default=None,
        help="Model source/provider override",
    )
    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=None,
        help="Give up waiting for the answer after this many seconds",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress streaming output, only show final result",
    )
    return parser


async def main(argv: list[str] | None = None) -> int:
    """Main entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging()
    config = StreamClientConfig.from_env()

    try:
        session_id = args.session
        if not session_id:
            async with SessionDirectory(api_base_url=config.api_base_url) as directory:
                session_id = await directory.resolve_session_id()

        request = QueryRequest(
            prompt=args.prompt,
            self_critic=args.self_critic,
            model=args.model,
            source=args.source,
        )

        out(colorize("=== Research Stream ===", Colors.BOLD))
        out(colorize(f"Session: {session_id}", Colors.DIM))
        out(colorize(f"Endpoint: {config.stream_url(session_id)}", Colors.DIM))
        out()

        async with ResearchStreamClient(config=config) as client:
            if not args.quiet:
                client.subscribe(print_event)
            await client.connect(session_id)
            turn = await client.query(request, timeout=args.timeout)

    except StreamError as e:
        out(colorize(f"Error: {e}", Colors.RED))
        return 1
    except asyncio.TimeoutError:
        out(colorize(f"Timed out after {args.timeout:g} seconds", Colors.RED))
        return 1

    out()
    if turn.status == TurnStatus.COMPLETED:
        title = "Solution:" if turn.is_solution else "Final output:"
        out(colorize(title, Colors.GREEN + Colors.BOLD))
        out(turn.final_output or "")
        return 0

    out(colorize(f"Query failed: {turn.error}", Colors.RED))
    return 1


def run() -> None:
    """Console script entry point."""
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        out(colorize("\nCancelled by user", Colors.YELLOW))
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    run()
