"""Splitting agent log text into plan / execute / observation sections.

The research agent writes its reasoning as loosely tagged text::

    ## Plan
    1. [ ] Load the dataset
    <execute>print(df.head())</execute>
    <observation>   gene  score ...</observation>
    <solution>...</solution>

Solution blocks are stripped here; they are surfaced separately as a turn's
final output (see ``research_stream.stream.solution``).
"""

import re
from enum import Enum

from pydantic import BaseModel

MESSAGE_DELIMITER = re.compile(r"={30,}\s*(?:Human|Ai)\s*Message\s*={30,}")
LONG_RULE = re.compile(r"={30,}")
SOLUTION_BLOCK = re.compile(r"<solution>[\s\S]*?</solution>", re.IGNORECASE)
RULE_LINE = re.compile(r"^=+$", re.MULTILINE)
INLINE_RULE = re.compile(r"\n={2,}\n")
BLANK_RUN = re.compile(r"\n\s*\n\s*\n")
LEADING_BLANK = re.compile(r"^\s*\n")

SECTION_PATTERN = re.compile(
    r"(?:## Plan|<plan>)([\s\S]*?)(?:</plan>|(?=<execute>|<observation>|<solution>|\Z))"
    r"|<execute>([\s\S]*?)</execute>"
    r"|<observation>([\s\S]*?)</observation>",
    re.IGNORECASE,
)


class SectionKind(str, Enum):
    """Kind of a log section."""

    PLAN = "plan"
    EXECUTE = "execute"
    OBSERVATION = "observation"
    TEXT = "text"


class LogSection(BaseModel):
    """One contiguous section of agent log text."""

    kind: SectionKind
    content: str


def clean_log_text(text: str) -> str:
    """Strip transcript delimiters and solution blocks, collapse blank lines."""
    cleaned = MESSAGE_DELIMITER.sub("", text)
    cleaned = LONG_RULE.sub("", cleaned)
    cleaned = SOLUTION_BLOCK.sub("", cleaned)
    cleaned = RULE_LINE.sub("", cleaned)
    cleaned = INLINE_RULE.sub("\n\n", cleaned)
    cleaned = BLANK_RUN.sub("\n\n", cleaned)
    cleaned = LEADING_BLANK.sub("", cleaned, count=1)
    return cleaned.strip()


def split_sections(text: str) -> list[LogSection]:
    """Split log text into ordered sections.

    Text outside any tagged region becomes a ``text`` section; whitespace-only
    gaps are dropped.
    """
    cleaned = clean_log_text(text)
    sections: list[LogSection] = []
    last_index = 0

    for match in SECTION_PATTERN.finditer(cleaned):
        _append_text(sections, cleaned[last_index:match.start()])
        plan, execute, observation = match.groups()
        if plan is not None:
            sections.append(LogSection(kind=SectionKind.PLAN, content=plan.strip()))
        elif execute is not None:
            sections.append(LogSection(kind=SectionKind.EXECUTE, content=execute.strip()))
        elif observation is not None:
            sections.append(
                LogSection(kind=SectionKind.OBSERVATION, content=observation.strip())
            )
        last_index = match.end()

    _append_text(sections, cleaned[last_index:])
    return sections


def _append_text(sections: list[LogSection], chunk: str) -> None:
    if chunk.strip():
        sections.append(LogSection(kind=SectionKind.TEXT, content=chunk.strip()))
