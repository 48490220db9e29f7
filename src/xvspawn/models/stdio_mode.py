"""Stdio wiring model for the child process."""

import enum


class StdioMode(enum.Enum):
    """How the child's stdin, stdout and stderr are connected to ours."""

    ALL_PIPED = "all-piped"
    INHERIT_ALL_BUT_STDERR_PIPED = "inherit-all-but-stderr-piped"
    INHERIT_ALL = "inherit-all"

    @property
    def pipes_stdin(self) -> bool:
        return self is StdioMode.ALL_PIPED

    @property
    def pipes_stdout(self) -> bool:
        return self is StdioMode.ALL_PIPED

    @property
    def pipes_stderr(self) -> bool:
        return self is not StdioMode.INHERIT_ALL

    @property
    def pipes_any(self) -> bool:
        return self.pipes_stdin or self.pipes_stdout or self.pipes_stderr
