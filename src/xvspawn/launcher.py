"""Spawn the child process and shuttle its standard streams.

The child is started with ``asyncio.create_subprocess_exec``. Depending on the
request's ``StdioMode`` each of stdin, stdout and stderr is either inherited
from this process or piped through it:

- piped stdin is fed from our own stdin by a daemon reader thread, so the
  event loop never blocks on a terminal read;
- piped stdout is copied to our stdout unmodified;
- piped stderr is decoded per chunk, dropped when it is known garbage or when
  the per-attempt classifier suppresses it, and otherwise copied unmodified.

Detached children are started in their own session. They are only left
running on their own when none of their streams is piped through us and the
caller does not need their exit code; piped streams tie us to the child until
it exits, as does a virtual display the child was started on.
"""

import asyncio
import logging
import subprocess
import sys
import threading
from typing import BinaryIO

from xvspawn.errors import LaunchError
from xvspawn.models import LaunchRequest
from xvspawn.stderr_filter import ChunkClassifier, is_garbage_line, is_suppressed

log = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


def _std_buffer(stream) -> BinaryIO | None:
    if stream is None:
        return None
    return getattr(stream, "buffer", stream)


async def _copy_stdout(reader: asyncio.StreamReader, sink: BinaryIO | None) -> None:
    while True:
        data = await reader.read(READ_CHUNK_SIZE)
        if not data:
            break
        if sink is not None:
            sink.write(data)
            sink.flush()


async def _filter_stderr(
    reader: asyncio.StreamReader,
    sink: BinaryIO | None,
    on_stderr_chunk: ChunkClassifier | None,
) -> None:
    while True:
        data = await reader.read(READ_CHUNK_SIZE)
        if not data:
            break
        text = data.decode(errors="replace")
        if is_garbage_line(text):
            log.debug("dropped stderr garbage: %r", text[:80])
            continue
        if on_stderr_chunk is not None and is_suppressed(on_stderr_chunk(text)):
            continue
        if sink is not None:
            sink.write(data)
            sink.flush()


def _start_stdin_reader(
    source: BinaryIO, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue
) -> None:
    """Read ``source`` on a daemon thread and hand chunks to the event loop."""
    read = getattr(source, "read1", source.read)

    def _post(item) -> bool:
        try:
            loop.call_soon_threadsafe(queue.put_nowait, item)
        except RuntimeError:
            # Event loop already closed; nobody is listening anymore.
            return False
        return True

    def _run() -> None:
        while True:
            try:
                data = read(READ_CHUNK_SIZE)
            except (OSError, ValueError) as e:
                _post(e)
                return
            if not _post(data) or not data:
                return

    thread = threading.Thread(target=_run, daemon=True, name="xvspawn-stdin")
    thread.start()


async def _feed_stdin(source: BinaryIO | None, writer: asyncio.StreamWriter) -> None:
    """Forward our stdin into the child's stdin until EOF.

    A broken pipe means the child closed its input early and is ignored;
    any other error propagates.
    """
    try:
        if source is not None:
            queue: asyncio.Queue = asyncio.Queue()
            _start_stdin_reader(source, asyncio.get_running_loop(), queue)
            while True:
                data = await queue.get()
                if isinstance(data, Exception):
                    raise data
                if not data:
                    break
                writer.write(data)
                await writer.drain()
        writer.close()
    except (BrokenPipeError, ConnectionResetError):
        log.debug("child closed its stdin early")


async def _wait_for_exit(process: asyncio.subprocess.Process, pumps: list[asyncio.Task]) -> int:
    # Drain piped output first so nothing written right before exit is lost.
    await asyncio.gather(*pumps)
    return await process.wait()


def _launch_unattended(request: LaunchRequest) -> int:
    log.debug("spawning detached %s, not waiting for it", request.argv)
    try:
        subprocess.Popen(request.argv, env=dict(request.env), start_new_session=True)
    except OSError as e:
        raise LaunchError(request.executable, e) from e
    return 0


async def launch(
    request: LaunchRequest,
    on_stderr_chunk: ChunkClassifier | None = None,
    *,
    stdin: BinaryIO | None = None,
    stdout: BinaryIO | None = None,
    stderr: BinaryIO | None = None,
    await_exit: bool = False,
) -> int:
    """Run the child described by ``request`` and return its exit code.

    ``stdin``/``stdout``/``stderr`` are the parent-side byte streams used
    for piped roles and default to this process's standard streams. A child
    killed by a signal reports the negative signal number.

    A detached child with no piped streams is not waited on and reports ``0``
    once started, unless ``await_exit`` is set. Detached children with piped
    streams are always waited on, since their output flows through us.

    Raises ``LaunchError`` when the child cannot be started.
    """
    mode = request.stdio
    if request.detached and not mode.pipes_any and not await_exit:
        return _launch_unattended(request)

    if stdin is None and mode.pipes_stdin:
        stdin = _std_buffer(sys.stdin)
    if stdout is None and mode.pipes_stdout:
        stdout = _std_buffer(sys.stdout)
    if stderr is None and mode.pipes_stderr:
        stderr = _std_buffer(sys.stderr)

    log.debug("spawning %s (stdio=%s)", request.argv, mode.value)
    try:
        process = await asyncio.create_subprocess_exec(
            request.executable,
            *request.args,
            stdin=asyncio.subprocess.PIPE if mode.pipes_stdin else None,
            stdout=asyncio.subprocess.PIPE if mode.pipes_stdout else None,
            stderr=asyncio.subprocess.PIPE if mode.pipes_stderr else None,
            env=dict(request.env),
            start_new_session=request.detached,
        )
    except OSError as e:
        raise LaunchError(request.executable, e) from e

    pumps = []
    if process.stdout is not None:
        pumps.append(asyncio.create_task(_copy_stdout(process.stdout, stdout)))
    if process.stderr is not None:
        pumps.append(asyncio.create_task(_filter_stderr(process.stderr, stderr, on_stderr_chunk)))
    waiter = asyncio.create_task(_wait_for_exit(process, pumps))

    if process.stdin is None:
        code = await waiter
    else:
        feeder = asyncio.create_task(_feed_stdin(stdin, process.stdin))
        done, _ = await asyncio.wait({waiter, feeder}, return_when=asyncio.FIRST_COMPLETED)
        if feeder in done and feeder.exception() is not None:
            waiter.cancel()
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            raise feeder.exception()
        if feeder not in done:
            feeder.cancel()
        code = await waiter

    log.debug("%s exited with code %s", request.executable, code)
    return code
