"""Locate the executable that should be launched."""

import logging
import os
import shutil

from xvspawn.errors import ExecutableNotFoundError
from xvspawn.models import SupervisorConfig

log = logging.getLogger(__name__)


def resolve_executable(candidate: str) -> str | None:
    """Resolve an executable name or path to a runnable command path."""
    has_sep = os.path.sep in candidate or (
        os.path.altsep is not None and os.path.altsep in candidate
    )
    if has_sep:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate
        return None
    return shutil.which(candidate)


def find_executable(name: str, config: SupervisorConfig) -> str:
    """Return the executable to launch, honoring the run-binary override."""
    if config.run_binary:
        executable = os.path.abspath(os.path.expanduser(config.run_binary))
        log.debug("using run binary override %s", executable)
        if resolve_executable(executable) is None:
            raise ExecutableNotFoundError(
                f"XVSPAWN_RUN_BINARY points at {executable}, which is not an executable file."
            )
        return executable

    executable = resolve_executable(name)
    if executable is None:
        raise ExecutableNotFoundError(
            f"Could not find an executable named {name!r}. "
            "Pass a full path or set XVSPAWN_RUN_BINARY."
        )
    log.debug("resolved %s to %s", name, executable)
    return executable
