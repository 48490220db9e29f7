"""Classification of chunks read from the child's stderr."""

import enum
import re
from collections.abc import Callable

# Windowing-library init chatter (Xlib, libudev), OS version compatibility
# warnings, and internal worker-process labels.
GARBAGE_PATTERNS = (
    re.compile(r"^(?:Xlib|libudev)"),
    re.compile(r"\*\*\* WARNING"),
    re.compile(r"\.RenderWorker-"),
)


class StderrVerdict(enum.Enum):
    KEEP = "keep"
    SUPPRESS = "suppress"


ChunkClassifier = Callable[[str], StderrVerdict | bool | None]


def is_garbage_line(text: str) -> bool:
    """Return whether ``text`` is known-benign noise that can be dropped.

    Chunks may hold partial lines, so patterns match a prefix or a
    substring of the chunk rather than a whole line. Anything not positively
    recognized is kept.
    """
    return any(pattern.search(text) for pattern in GARBAGE_PATTERNS)


def is_suppressed(verdict: StderrVerdict | bool | None) -> bool:
    """Return whether a classifier result asks for the chunk to be dropped."""
    return verdict is StderrVerdict.SUPPRESS or verdict is False
