"""Environment overrides handed to the child process."""

import os
import sys
from collections.abc import Mapping
from typing import TextIO


def _isatty(stream: TextIO | None) -> bool:
    return stream is not None and hasattr(stream, "isatty") and stream.isatty()


def supports_color(stream: TextIO | None = None, environ: Mapping[str, str] | None = None) -> bool:
    """Return whether ANSI color output should be used on ``stream``."""
    env = os.environ if environ is None else environ
    if env.get("NO_COLOR") is not None:
        return False
    if env.get("TERM", "").lower() == "dumb":
        return False
    return _isatty(sys.stdout if stream is None else stream)


def get_env_overrides(
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Return variables telling the child what our terminal looks like.

    When stderr (or everything) is piped through us the child can no longer
    see a TTY on its own, so the real state is passed along explicitly.
    """
    stdin = sys.stdin if stdin is None else stdin
    stdout = sys.stdout if stdout is None else stdout
    stderr = sys.stderr if stderr is None else stderr
    return {
        "FORCE_COLOR": "1" if supports_color(stdout, environ) else "0",
        "FORCE_STDIN_TTY": "1" if _isatty(stdin) else "0",
        "FORCE_STDOUT_TTY": "1" if _isatty(stdout) else "0",
        "FORCE_STDERR_TTY": "1" if _isatty(stderr) else "0",
    }
