"""Launch request model for a single child process attempt."""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping

from xvspawn.models.stdio_mode import StdioMode


@dataclass(frozen=True)
class LaunchRequest:
    """Everything needed to start the child process once."""

    executable: str
    args: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict)
    detached: bool = False
    stdio: StdioMode = StdioMode.INHERIT_ALL

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    def with_env(self, **overrides: str) -> "LaunchRequest":
        """Return a copy whose environment has ``overrides`` merged on top."""
        return replace(self, env={**self.env, **overrides})
