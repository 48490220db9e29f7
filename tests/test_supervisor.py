"""Unit tests for xvspawn.supervisor."""

import asyncio
import errno
import os
import sys

import pytest

from xvspawn.errors import DisplayError, LaunchError, UnexpectedLaunchError
from xvspawn.models import LaunchRequest, StdioMode, SupervisorConfig
from xvspawn.stderr_filter import StderrVerdict, is_garbage_line, is_suppressed
from xvspawn.supervisor import (
    AttemptState,
    BrokenDisplayDetector,
    Supervisor,
    is_broken_display,
    should_retry,
)

LINUX_WITH_DISPLAY = {"DISPLAY": ":0", "PATH": "/usr/bin"}
LINUX_HEADLESS = {"PATH": "/usr/bin"}
BROKEN = "Gtk: cannot open display: :0\n"


class FakeLaunch:
    """Stand-in for launcher.launch that replays scripted attempts."""

    def __init__(self, *attempts):
        self.attempts = list(attempts)
        self.calls = []
        self.forwarded = []
        self.awaited = []

    async def __call__(self, request, on_stderr_chunk=None, *, await_exit=False):
        self.calls.append((request, on_stderr_chunk))
        self.awaited.append(await_exit)
        outcome, chunks = self.attempts.pop(0)
        for chunk in chunks:
            if is_garbage_line(chunk):
                continue
            if on_stderr_chunk is not None and is_suppressed(on_stderr_chunk(chunk)):
                continue
            self.forwarded.append(chunk)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeDisplay:
    def __init__(self, fail=False):
        self.acquired = 0
        self.released = 0
        self.fail = fail

    async def acquire(self):
        if self.fail:
            raise DisplayError("no Xvfb here")
        self.acquired += 1
        return ":42"

    async def release(self):
        self.released += 1


def _request(env=LINUX_WITH_DISPLAY):
    return LaunchRequest(
        executable="/opt/app/app",
        args=("--cwd", "/work"),
        env=env,
        stdio=StdioMode.INHERIT_ALL_BUT_STDERR_PIPED,
    )


def _supervisor(fake_launch, display=None, environ=LINUX_WITH_DISPLAY, system="Linux", **config):
    advisories = []
    supervisor = Supervisor(
        SupervisorConfig(**config),
        display or FakeDisplay(),
        launch_fn=fake_launch,
        advise=advisories.append,
        system=system,
        environ=environ,
    )
    return supervisor, advisories


def _run(supervisor, request=None):
    return asyncio.run(supervisor.run(request or _request()))


class TestBrokenDisplayDetector:
    def test_signature_is_detected(self):
        assert is_broken_display("(app:123): Gtk: cannot open display: :0") is True

    def test_other_text_is_not_the_signature(self):
        assert is_broken_display("Gtk-WARNING: theme parsing error") is False

    def test_records_signature_and_suppresses_by_default(self):
        detector = BrokenDisplayDetector()
        assert detector("unrelated") is StderrVerdict.SUPPRESS
        assert detector.observed is False
        assert detector(BROKEN) is StderrVerdict.SUPPRESS
        assert detector.observed is True

    def test_verbose_keeps_chunks(self):
        detector = BrokenDisplayDetector(verbose=True)
        assert detector(BROKEN) is StderrVerdict.KEEP
        assert detector.observed is True

    def test_should_retry_needs_failure_and_signature(self):
        seen = BrokenDisplayDetector()
        seen(BROKEN)
        assert should_retry(1, seen) is True
        assert should_retry(0, seen) is False
        assert should_retry(1, BrokenDisplayDetector()) is False
        assert should_retry(1, None) is False


class TestFirstAttempt:
    def test_success_never_acquires_display(self):
        fake = FakeLaunch((0, [BROKEN]))
        display = FakeDisplay()
        supervisor, advisories = _supervisor(fake, display)

        assert _run(supervisor) == 0
        assert display.acquired == 0
        assert len(fake.calls) == 1
        assert advisories == []

    def test_failure_without_signature_is_final(self):
        fake = FakeLaunch((1, ["Error: bad flag\n"]))
        display = FakeDisplay()
        supervisor, advisories = _supervisor(fake, display)

        assert _run(supervisor) == 1
        assert display.acquired == 0
        assert len(fake.calls) == 1
        assert advisories == []

    def test_first_attempt_enables_child_logging(self):
        fake = FakeLaunch((0, []))
        supervisor, _ = _supervisor(fake)

        _run(supervisor)

        request, classifier = fake.calls[0]
        assert request.env["ELECTRON_ENABLE_LOGGING"] == "1"
        assert isinstance(classifier, BrokenDisplayDetector)

    def test_child_logging_env_can_be_disabled(self):
        fake = FakeLaunch((0, []))
        supervisor, _ = _supervisor(fake, child_logging_env=None)

        _run(supervisor)

        request, _ = fake.calls[0]
        assert "ELECTRON_ENABLE_LOGGING" not in request.env

    def test_stderr_is_hidden_unless_child_logging_is_verbose(self):
        fake = FakeLaunch((1, ["some diagnostic\n"]))
        supervisor, _ = _supervisor(fake)
        _run(supervisor)
        assert fake.forwarded == []

        fake = FakeLaunch((1, ["some diagnostic\n"]))
        supervisor, _ = _supervisor(fake, verbose_child_logging=True)
        _run(supervisor)
        assert fake.forwarded == ["some diagnostic\n"]

    def test_non_linux_launches_without_detector(self):
        fake = FakeLaunch((1, [BROKEN]))
        display = FakeDisplay()
        supervisor, _ = _supervisor(fake, display, system="Darwin")

        assert _run(supervisor) == 1
        assert fake.calls[0][1] is None
        assert fake.forwarded == [BROKEN]
        assert display.acquired == 0

    def test_garbage_does_not_trigger_retry(self):
        fake = FakeLaunch((1, ['Xlib: extension "RANDR" missing on display ":0".\n']))
        display = FakeDisplay()
        supervisor, _ = _supervisor(fake, display)

        assert _run(supervisor) == 1
        assert display.acquired == 0
        assert fake.forwarded == []

    def test_launch_failure_is_wrapped_and_not_retried(self):
        cause = LaunchError("/opt/app/app", FileNotFoundError(errno.ENOENT, "No such file"))
        fake = FakeLaunch((cause, []))
        display = FakeDisplay()
        supervisor, _ = _supervisor(fake, display)

        with pytest.raises(UnexpectedLaunchError) as exc_info:
            _run(supervisor)

        assert exc_info.value.__cause__ is cause
        assert "No such file" in str(exc_info.value)
        assert display.acquired == 0
        assert len(fake.calls) == 1

    def test_any_launch_exception_is_wrapped(self):
        cause = ValueError("embedded null byte")
        fake = FakeLaunch((cause, []))
        supervisor, _ = _supervisor(fake)

        with pytest.raises(UnexpectedLaunchError) as exc_info:
            _run(supervisor)

        assert exc_info.value.__cause__ is cause
        assert "embedded null byte" in str(exc_info.value)

    def test_first_attempt_does_not_force_waiting(self):
        fake = FakeLaunch((0, []))
        supervisor, _ = _supervisor(fake)

        _run(supervisor)

        assert fake.awaited == [False]


class TestRetryUnderVirtualDisplay:
    def test_broken_display_retries_once_under_xvfb(self):
        fake = FakeLaunch((1, [BROKEN]), (0, []))
        display = FakeDisplay()
        supervisor, advisories = _supervisor(fake, display)

        assert _run(supervisor) == 0

        assert len(advisories) == 1
        assert "DISPLAY=:0" in advisories[0]
        assert display.acquired == 1
        assert display.released == 1
        assert len(fake.calls) == 2
        retried, classifier = fake.calls[1]
        assert retried.env["DISPLAY"] == ":42"
        assert "ELECTRON_ENABLE_LOGGING" not in retried.env
        assert classifier is None
        assert supervisor.state is AttemptState.RETRYING_UNDER_VIRTUAL_DISPLAY

    def test_retry_result_is_final_even_when_it_fails(self):
        fake = FakeLaunch((1, [BROKEN]), (7, [BROKEN]))
        display = FakeDisplay()
        supervisor, advisories = _supervisor(fake, display)

        assert _run(supervisor) == 7
        assert len(fake.calls) == 2
        assert display.acquired == 1
        assert display.released == 1
        assert len(advisories) == 1
        assert fake.forwarded == [BROKEN]

    def test_display_is_released_when_retry_raises(self):
        cause = LaunchError("/opt/app/app", PermissionError(errno.EACCES, "Permission denied"))
        fake = FakeLaunch((1, [BROKEN]), (cause, []))
        display = FakeDisplay()
        supervisor, _ = _supervisor(fake, display)

        with pytest.raises(UnexpectedLaunchError):
            _run(supervisor)

        assert display.acquired == 1
        assert display.released == 1

    def test_original_request_is_not_mutated(self):
        fake = FakeLaunch((1, [BROKEN]), (0, []))
        supervisor, _ = _supervisor(fake)
        request = _request()

        _run(supervisor, request)

        assert request.env["DISPLAY"] == ":0"
        assert "ELECTRON_ENABLE_LOGGING" not in request.env

    def test_display_failure_propagates_without_release(self):
        fake = FakeLaunch((1, [BROKEN]))
        display = FakeDisplay(fail=True)
        supervisor, _ = _supervisor(fake, display)

        with pytest.raises(DisplayError):
            _run(supervisor)

        assert display.released == 0
        assert len(fake.calls) == 1


class TestHeadlessHost:
    def test_virtual_display_is_used_from_the_start(self):
        fake = FakeLaunch((3, [BROKEN]))
        display = FakeDisplay()
        supervisor, advisories = _supervisor(fake, display, environ=LINUX_HEADLESS)

        assert _run(supervisor, _request(LINUX_HEADLESS)) == 3

        assert len(fake.calls) == 1
        request, classifier = fake.calls[0]
        assert request.env["DISPLAY"] == ":42"
        assert classifier is None
        assert display.acquired == 1
        assert display.released == 1
        assert advisories == []

    def test_virtual_display_waits_for_the_child_to_exit(self):
        fake = FakeLaunch((0, []))
        supervisor, _ = _supervisor(fake, environ=LINUX_HEADLESS)

        _run(supervisor, _request(LINUX_HEADLESS))

        assert fake.awaited == [True]

    def test_retry_waits_for_the_child_to_exit(self):
        fake = FakeLaunch((1, [BROKEN]), (0, []))
        supervisor, _ = _supervisor(fake)

        _run(supervisor)

        assert fake.awaited == [False, True]


class TestBuildRequest:
    def test_appends_cwd_marker_and_merges_overrides(self):
        supervisor, _ = _supervisor(FakeLaunch())

        request = supervisor.build_request(
            "/opt/app/app",
            ["--run", "spec"],
            cwd="/work",
            env_overrides={"FORCE_COLOR": "0", "PATH": "/override"},
        )

        assert request.args == ("--run", "spec", "--cwd", "/work")
        assert request.env["FORCE_COLOR"] == "0"
        assert request.env["PATH"] == "/override"
        assert request.env["DISPLAY"] == ":0"
        assert request.detached is False
        assert request.stdio is StdioMode.INHERIT_ALL_BUT_STDERR_PIPED

    def test_current_display_wins_over_overrides(self):
        supervisor, _ = _supervisor(FakeLaunch())

        request = supervisor.build_request(
            "/opt/app/app", [], cwd="/work", env_overrides={"DISPLAY": ":stale"}
        )

        assert request.env["DISPLAY"] == ":0"

    def test_defaults_cwd_to_current_directory(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        supervisor, _ = _supervisor(FakeLaunch())

        request = supervisor.build_request("/opt/app/app", [], env_overrides={})

        assert request.args == ("--cwd", os.getcwd())

    def test_inherits_everything_on_plain_hosts(self):
        supervisor, _ = _supervisor(FakeLaunch(), system="FreeBSD", environ={})

        request = supervisor.build_request("/opt/app/app", [], cwd="/", env_overrides={})

        assert request.stdio is StdioMode.INHERIT_ALL

    def test_start_runs_the_built_request(self):
        fake = FakeLaunch((0, []))
        supervisor, _ = _supervisor(fake)

        code = asyncio.run(
            supervisor.start("/opt/app/app", ["a"], detached=True, cwd="/w", env_overrides={})
        )

        assert code == 0
        request, _ = fake.calls[0]
        assert request.args == ("a", "--cwd", "/w")
        assert request.detached is True


class RecordingDisplay(FakeDisplay):
    """Display that notes whether the child had finished when it was released."""

    def __init__(self, marker):
        super().__init__()
        self.marker = marker
        self.child_done_at_release = None

    async def release(self):
        self.child_done_at_release = self.marker.exists()
        await super().release()


@pytest.mark.skipif(os.name != "posix", reason="needs POSIX sessions")
class TestDetachedWithRealLauncher:
    def _supervisor(self, display, environ):
        return Supervisor(
            SupervisorConfig(),
            display,
            advise=lambda _: None,
            system="Linux",
            environ=environ,
        )

    def test_headless_detached_child_keeps_the_display_until_it_exits(self, tmp_path):
        marker = tmp_path / "done"
        display = RecordingDisplay(marker)
        environ = {k: v for k, v in os.environ.items() if k != "DISPLAY"}
        supervisor = self._supervisor(display, environ)
        request = LaunchRequest(
            executable=sys.executable,
            args=(
                "-c",
                f"import pathlib, time; time.sleep(1); pathlib.Path({str(marker)!r}).write_text('x')",
            ),
            env=environ,
            detached=True,
            stdio=StdioMode.INHERIT_ALL,
        )

        assert asyncio.run(supervisor.run(request)) == 0

        assert display.released == 1
        assert display.child_done_at_release is True

    def test_detached_start_with_piped_stderr_reports_real_exit_code(self, tmp_path):
        environ = {**os.environ, "DISPLAY": ":0"}
        supervisor = self._supervisor(FakeDisplay(), environ)

        code = asyncio.run(
            supervisor.start(
                sys.executable,
                ["-c", "import sys; sys.exit(5)"],
                detached=True,
                cwd=str(tmp_path),
                env_overrides={},
            )
        )

        assert code == 5
