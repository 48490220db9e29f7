"""Exception types raised by xvspawn."""


class XvspawnError(RuntimeError):
    """Base class for every error xvspawn reports to the user."""


class LaunchError(XvspawnError):
    """The child process could not be started at all."""

    def __init__(self, executable: str, cause: OSError) -> None:
        self.executable = executable
        self.cause = cause
        super().__init__(f"could not start {executable}: {cause.strerror or cause}")


class UnexpectedLaunchError(XvspawnError):
    """A launch attempt failed in a way that is not a plain non-zero exit."""


class ExecutableNotFoundError(XvspawnError):
    """No runnable executable was found for the requested program."""


class DisplayError(XvspawnError):
    """The virtual display server could not be started."""
