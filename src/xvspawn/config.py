"""Configuration loading for xvspawn."""

import os
from collections.abc import Mapping

from xvspawn.models import (
    DEFAULT_CHILD_LOGGING_ENV,
    DEFAULT_XVFB_EXECUTABLE,
    DEFAULT_XVFB_SCREEN,
    SupervisorConfig,
)

TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(environ: Mapping[str, str], key: str) -> bool:
    return environ.get(key, "").strip().lower() in TRUTHY


def _env_str(environ: Mapping[str, str], key: str) -> str | None:
    value = environ.get(key, "").strip()
    return value or None


def load_config(environ: Mapping[str, str] | None = None) -> SupervisorConfig:
    """Build the runtime configuration from XVSPAWN_* environment variables."""
    env = os.environ if environ is None else environ
    return SupervisorConfig(
        verbose_child_logging=_env_flag(env, "XVSPAWN_CHILD_LOGGING"),
        child_logging_env=env.get("XVSPAWN_CHILD_LOGGING_ENV", DEFAULT_CHILD_LOGGING_ENV).strip()
        or None,
        run_binary=_env_str(env, "XVSPAWN_RUN_BINARY"),
        xvfb_executable=_env_str(env, "XVSPAWN_XVFB") or DEFAULT_XVFB_EXECUTABLE,
        xvfb_screen=_env_str(env, "XVSPAWN_XVFB_SCREEN") or DEFAULT_XVFB_SCREEN,
    )
