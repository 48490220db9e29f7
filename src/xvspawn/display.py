"""Private Xvfb server used when the real display is unusable."""

import asyncio
import logging
import os
from typing import Protocol

from xvspawn.errors import DisplayError
from xvspawn.models import DEFAULT_XVFB_EXECUTABLE, DEFAULT_XVFB_SCREEN

log = logging.getLogger(__name__)

TERMINATE_TIMEOUT_SECONDS = 10


class VirtualDisplay(Protocol):
    """Lifecycle of a virtual display server."""

    async def acquire(self) -> str: ...

    async def release(self) -> None: ...


class XvfbDisplay:
    """Start and stop one Xvfb server.

    Xvfb picks a free display number itself and reports it through the
    ``-displayfd`` pipe, so concurrent invocations never race for ``:99``.
    """

    def __init__(
        self,
        executable: str = DEFAULT_XVFB_EXECUTABLE,
        screen: str = DEFAULT_XVFB_SCREEN,
    ) -> None:
        self.executable = executable
        self.screen = screen
        self.display: str | None = None
        self._process: asyncio.subprocess.Process | None = None

    def _argv(self, display_fd: int) -> list[str]:
        return [
            self.executable,
            "-nolisten",
            "tcp",
            "-screen",
            "0",
            self.screen,
            "-displayfd",
            str(display_fd),
        ]

    async def _read_display_number(self, read_fd: int) -> str:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        pipe = os.fdopen(read_fd, "rb", buffering=0)
        transport, _ = await loop.connect_read_pipe(
            lambda: asyncio.StreamReaderProtocol(reader), pipe
        )
        try:
            line = await reader.readline()
        finally:
            transport.close()
        return line.decode(errors="replace").strip()

    async def acquire(self) -> str:
        """Start Xvfb and return its display name, e.g. ``":1"``."""
        if self._process is not None:
            raise DisplayError("virtual display is already running")

        read_fd, write_fd = os.pipe()
        try:
            argv = self._argv(write_fd)
            log.debug("starting %s", argv)
            try:
                self._process = await asyncio.create_subprocess_exec(
                    *argv,
                    pass_fds=(write_fd,),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL,
                )
            except OSError as e:
                os.close(read_fd)
                raise DisplayError(
                    f"could not start {self.executable}: {e.strerror or e}. "
                    "Install Xvfb (e.g. apt-get install xvfb)."
                ) from e
        finally:
            os.close(write_fd)

        number = await self._read_display_number(read_fd)
        if not number:
            await self.release()
            raise DisplayError(f"{self.executable} exited without reporting a display")

        self.display = f":{number}"
        log.debug("Xvfb is serving display %s", self.display)
        return self.display

    async def release(self) -> None:
        """Stop the Xvfb server if it is running."""
        process, self._process = self._process, None
        self.display = None
        if process is None:
            return
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), TERMINATE_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                log.debug("Xvfb ignored SIGTERM, killing it")
                process.kill()
                await process.wait()
        log.debug("Xvfb stopped with code %s", process.returncode)
