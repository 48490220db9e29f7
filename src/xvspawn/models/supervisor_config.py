"""Configuration model for xvspawn."""

from pydantic import BaseModel

DEFAULT_CHILD_LOGGING_ENV = "ELECTRON_ENABLE_LOGGING"
DEFAULT_XVFB_EXECUTABLE = "Xvfb"
DEFAULT_XVFB_SCREEN = "1280x1024x24"


class SupervisorConfig(BaseModel):
    """Runtime configuration for the launcher and its retry logic."""

    verbose_child_logging: bool = False
    child_logging_env: str | None = DEFAULT_CHILD_LOGGING_ENV
    run_binary: str | None = None
    xvfb_executable: str = DEFAULT_XVFB_EXECUTABLE
    xvfb_screen: str = DEFAULT_XVFB_SCREEN
