"""Launch the child once and retry under a virtual display when needed."""

import enum
import logging
import os
import sys
from collections.abc import Awaitable, Callable, Mapping, Sequence

from xvspawn.display import VirtualDisplay
from xvspawn.env import get_env_overrides, supports_color
from xvspawn.errors import DisplayError, UnexpectedLaunchError
from xvspawn.launcher import launch
from xvspawn.messages import broken_display_advisory, format_advisory, format_unexpected_error
from xvspawn.models import LaunchRequest, SupervisorConfig
from xvspawn.platform_policy import (
    is_possible_linux_with_incorrect_display,
    requires_virtual_display,
    resolve_stdio_mode,
)
from xvspawn.stderr_filter import StderrVerdict

log = logging.getLogger(__name__)

# GTK prints this when DISPLAY names an X server it cannot connect to.
BROKEN_DISPLAY_SIGNATURE = "Gtk: cannot open display"

# Called as launch_fn(request, on_stderr_chunk, await_exit=...).
LaunchFn = Callable[..., Awaitable[int]]


def is_broken_display(text: str) -> bool:
    return BROKEN_DISPLAY_SIGNATURE in text


class BrokenDisplayDetector:
    """Stderr classifier for one attempt that remembers the broken display signature."""

    def __init__(self, verbose: bool = False) -> None:
        self.observed = False
        self._verbose = verbose

    def __call__(self, chunk: str) -> StderrVerdict:
        if is_broken_display(chunk):
            self.observed = True
        # Child logging was switched on only to spot the signature; keep it
        # off the terminal unless the operator asked for it.
        return StderrVerdict.KEEP if self._verbose else StderrVerdict.SUPPRESS


def should_retry(code: int, detector: BrokenDisplayDetector | None) -> bool:
    return code != 0 and detector is not None and detector.observed


class AttemptState(enum.Enum):
    FIRST_ATTEMPT = "first-attempt"
    RETRYING_UNDER_VIRTUAL_DISPLAY = "retrying-under-virtual-display"


def _print_advisory(text: str) -> None:
    print(format_advisory(text, supports_color(sys.stderr)), file=sys.stderr)


class Supervisor:
    """Run the child, falling back to a virtual display at most once."""

    def __init__(
        self,
        config: SupervisorConfig,
        display: VirtualDisplay,
        *,
        launch_fn: LaunchFn = launch,
        advise: Callable[[str], None] = _print_advisory,
        system: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.config = config
        self.display = display
        self.state = AttemptState.FIRST_ATTEMPT
        self._launch = launch_fn
        self._advise = advise
        self._system = system
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    def build_request(
        self,
        executable: str,
        args: Sequence[str],
        *,
        detached: bool = False,
        cwd: str | None = None,
        env_overrides: Mapping[str, str] | None = None,
    ) -> LaunchRequest:
        """Assemble the launch request for the first attempt."""
        environ = self.environ
        needs_virtual_display = requires_virtual_display(self._system, environ)
        log.debug("needs to start own Xvfb? %s", needs_virtual_display)

        overrides = get_env_overrides(environ=environ) if env_overrides is None else env_overrides
        env = {**environ, **overrides}
        if is_possible_linux_with_incorrect_display(self._system, environ):
            # The current DISPLAY beats any override.
            env["DISPLAY"] = environ["DISPLAY"]

        # The working directory marker also tells the child it was started by us.
        argv = [*args, "--cwd", os.getcwd() if cwd is None else cwd]
        return LaunchRequest(
            executable=executable,
            args=tuple(argv),
            env=env,
            detached=detached,
            stdio=resolve_stdio_mode(needs_virtual_display, self._system, environ),
        )

    async def start(
        self,
        executable: str,
        args: Sequence[str],
        *,
        detached: bool = False,
        cwd: str | None = None,
        env_overrides: Mapping[str, str] | None = None,
    ) -> int:
        request = self.build_request(
            executable, args, detached=detached, cwd=cwd, env_overrides=env_overrides
        )
        return await self.run(request)

    async def run(self, request: LaunchRequest) -> int:
        """Run ``request`` and return the final exit code.

        Raises ``UnexpectedLaunchError`` when an attempt could not be started
        or failed while running. ``DisplayError`` propagates unwrapped.
        """
        self.state = AttemptState.FIRST_ATTEMPT
        try:
            if requires_virtual_display(self._system, self.environ):
                return await self._run_under_virtual_display(request)
            return await self._run_first_attempt(request)
        except DisplayError:
            raise
        except Exception as e:
            raise UnexpectedLaunchError(format_unexpected_error(e)) from e

    async def _run_first_attempt(self, request: LaunchRequest) -> int:
        detector = None
        attempt = request
        if is_possible_linux_with_incorrect_display(self._system, self.environ):
            detector = BrokenDisplayDetector(verbose=self.config.verbose_child_logging)
            if self.config.child_logging_env:
                attempt = request.with_env(**{self.config.child_logging_env: "1"})
        log.debug("spawning, should retry on display problem? %s", detector is not None)

        code = await self._launch(attempt, detector)
        if not should_retry(code, detector):
            return code

        log.debug("exit code %s with broken display, retrying under Xvfb", code)
        self._advise(broken_display_advisory(request.env.get("DISPLAY")))
        return await self._run_under_virtual_display(request)

    async def _run_under_virtual_display(self, request: LaunchRequest) -> int:
        self.state = AttemptState.RETRYING_UNDER_VIRTUAL_DISPLAY
        display = await self.display.acquire()
        try:
            # The display must outlive the child, detached or not.
            return await self._launch(request.with_env(DISPLAY=display), None, await_exit=True)
        finally:
            await self.display.release()
