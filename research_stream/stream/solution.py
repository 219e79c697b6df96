"""Final-output extraction from accumulated agent logs.

The backend does not always set ``is_complete`` promptly, so the final answer
of a turn is recovered from the log text itself. This is a best-effort
heuristic, not a protocol guarantee:

1. A ``<solution>...</solution>`` block wins. Its contents are trimmed and
   lightly normalized (headings, bullets, runs of blank lines).
2. Otherwise the last log line mentioning a terminal-sounding keyword.
3. Otherwise the most recent log line.
"""

import re

from pydantic import BaseModel

SOLUTION_PATTERN = re.compile(r"<solution>([\s\S]*?)</solution>", re.IGNORECASE)
HEADING_PATTERN = re.compile(r"^#+[ \t]*", re.MULTILINE)
BULLET_PATTERN = re.compile(r"^[ \t]*[-*+•][ \t]+", re.MULTILINE)
BLANK_RUN_PATTERN = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)+")

TERMINAL_KEYWORDS = ("solution", "answer", "conclusion", "final")


class ExtractedOutput(BaseModel):
    """Final output recovered from a turn's logs."""

    text: str
    is_solution: bool = False


def find_solution_block(text: str) -> str | None:
    """Raw contents of the first solution block, or None."""
    match = SOLUTION_PATTERN.search(text)
    if match and match.group(1).strip():
        return match.group(1)
    return None


def has_solution_block(logs: list[str]) -> bool:
    """Whether the accumulated logs contain a solution block."""
    return find_solution_block("\n".join(logs)) is not None


def normalize_solution(raw: str) -> str:
    """Trim and lightly normalize the markdown inside a solution block."""
    text = raw.strip()
    text = HEADING_PATTERN.sub("## ", text)
    text = BULLET_PATTERN.sub("- ", text)
    text = BLANK_RUN_PATTERN.sub("\n\n", text)
    return text


def _keyword_line(logs: list[str]) -> str | None:
    for line in reversed(logs):
        lowered = line.lower()
        if any(keyword in lowered for keyword in TERMINAL_KEYWORDS):
            return line
    return None


def extract_final_output(logs: list[str]) -> ExtractedOutput | None:
    """Pick the final output for a turn. Returns None when there are no logs."""
    if not logs:
        return None

    block = find_solution_block("\n".join(logs))
    if block is not None:
        return ExtractedOutput(text=normalize_solution(block), is_solution=True)

    line = _keyword_line(logs)
    if line is not None:
        return ExtractedOutput(text=line)

    return ExtractedOutput(text=logs[-1])
