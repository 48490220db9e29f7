"""Model package for xvspawn."""

from xvspawn.models.launch_request import LaunchRequest
from xvspawn.models.stdio_mode import StdioMode
from xvspawn.models.supervisor_config import (
    DEFAULT_CHILD_LOGGING_ENV,
    DEFAULT_XVFB_EXECUTABLE,
    DEFAULT_XVFB_SCREEN,
    SupervisorConfig,
)

__all__ = [
    "DEFAULT_CHILD_LOGGING_ENV",
    "DEFAULT_XVFB_EXECUTABLE",
    "DEFAULT_XVFB_SCREEN",
    "LaunchRequest",
    "StdioMode",
    "SupervisorConfig",
]
