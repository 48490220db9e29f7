"""Decide whether a virtual display is needed and how to wire stdio."""

import os
import platform
from collections.abc import Mapping

from xvspawn.models import StdioMode

LINUX = "Linux"
MACOS = "Darwin"
WINDOWS = "Windows"


def _system(system: str | None) -> str:
    return platform.system() if system is None else system


def _environ(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def requires_virtual_display(
    system: str | None = None, environ: Mapping[str, str] | None = None
) -> bool:
    """Return whether the child can only run under a virtual display."""
    if _system(system) != LINUX:
        return False
    # An empty DISPLAY is as good as none at all.
    return not _environ(environ).get("DISPLAY", "").strip()


def is_possible_linux_with_incorrect_display(
    system: str | None = None, environ: Mapping[str, str] | None = None
) -> bool:
    """Return whether DISPLAY is set on Linux but may not point at a usable server."""
    return _system(system) == LINUX and bool(_environ(environ).get("DISPLAY", "").strip())


def resolve_stdio_mode(
    needs_virtual_display: bool,
    system: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> StdioMode:
    """Pick the stdio wiring for the child process."""
    host = _system(system)
    if host == WINDOWS:
        return StdioMode.ALL_PIPED
    # Pipe stderr only where the child is expected to emit noise we filter.
    if (
        host == MACOS
        or (host == LINUX and needs_virtual_display)
        or is_possible_linux_with_incorrect_display(host, environ)
    ):
        return StdioMode.INHERIT_ALL_BUT_STDERR_PIPED
    return StdioMode.INHERIT_ALL
