"""
Shell execution - the one tool that runs concurrently.

run_command spawns a command through the platform shell and returns a
transcript of everything it printed. Two drain tasks read stdout and
stderr at the same time and push prefixed lines onto one queue; a single
collector task is the only writer of the transcript and also echoes each
line live. Lines keep their order within a stream; how stdout and stderr
lines interleave is arrival order and not deterministic.

A timer armed at spawn time kills the command when the (clamped) bound
expires. A timeout is not an error: the transcript ends with a timeout
marker instead of the exit code, so the model can see what happened.
"""

import asyncio
import codecs
import contextlib
import logging
import math
import os
import signal
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from nanocode.tools import ToolError

logger = logging.getLogger(__name__)

MIN_TIMEOUT_MS = 1_000
MAX_TIMEOUT_MS = 300_000
# How long drains may keep reading after a kill before they are cancelled.
DRAIN_GRACE_SECONDS = 5.0
READ_CHUNK_SIZE = 4096

STDOUT_PREFIX = "[stdout] "
STDERR_PREFIX = "[stderr] "
NO_OUTPUT = "(no output)"

IS_WINDOWS = sys.platform == "win32"

LineCallback = Callable[[str], None]


def clamp_timeout(raw: Any) -> int:
    """
    Coerce a caller-supplied timeout (ms) into [MIN_TIMEOUT_MS, MAX_TIMEOUT_MS].

    Anything that is not a number falls back to the minimum.
    """
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return MIN_TIMEOUT_MS
    if math.isnan(value):
        return MIN_TIMEOUT_MS
    return int(min(max(value, MIN_TIMEOUT_MS), MAX_TIMEOUT_MS))


def shell_argv(command: str) -> list[str]:
    if IS_WINDOWS:
        return ["cmd", "/c", command]
    return ["sh", "-c", command]


@dataclass
class ExecutionState:
    """
    State of one run_command call.

    The transcript only grows until finish() is called; after that it is
    frozen and exactly one terminal marker is rendered.
    """
    timeout_ms: int
    timed_out: bool = False
    exit_code: int | None = None
    transcript: list[str] = field(default_factory=list)
    finished: bool = False

    def append(self, line: str) -> None:
        if self.finished:
            raise RuntimeError("transcript is frozen")
        self.transcript.append(line)

    def finish(self, exit_code: int | None) -> None:
        if self.finished:
            raise RuntimeError("execution already finished")
        self.exit_code = exit_code
        self.finished = True

    def render(self) -> str:
        body = "\n".join(self.transcript) or NO_OUTPUT
        if self.timed_out:
            return f"{body}\n[TIMEOUT after {self.timeout_ms}ms]"
        return f"{body}\n[exit: {self.exit_code}]"


def _kill(process: asyncio.subprocess.Process) -> None:
    """SIGKILL the command's whole process group (the shell and its children)."""
    with contextlib.suppress(ProcessLookupError, PermissionError):
        if IS_WINDOWS:
            process.kill()
        else:
            os.killpg(process.pid, signal.SIGKILL)


def _close_pipes(process: asyncio.subprocess.Process) -> None:
    """Close the pipes of a process whose drains were abandoned."""
    # Process has no public close; the transport owns the pipe transports.
    transport = getattr(process, "_transport", None)
    if transport is not None:
        transport.close()


async def _drain(
    stream: asyncio.StreamReader,
    prefix: str,
    queue: "asyncio.Queue[str | None]",
) -> None:
    """Read one stream to EOF, pushing each complete non-blank line."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""

    def emit(line: str) -> None:
        line = line.rstrip("\r")
        if line:
            queue.put_nowait(f"{prefix}{line}")

    try:
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            pending += decoder.decode(chunk)
            *lines, pending = pending.split("\n")
            for line in lines:
                emit(line)
        emit(pending + decoder.decode(b"", final=True))
    finally:
        queue.put_nowait(None)


async def _collect(
    queue: "asyncio.Queue[str | None]",
    state: ExecutionState,
    on_line: LineCallback | None,
    producers: int,
) -> None:
    """Sole writer of the transcript; stops after every producer is done."""
    remaining = producers
    while remaining:
        item = await queue.get()
        if item is None:
            remaining -= 1
            continue
        state.append(item)
        if on_line is not None:
            on_line(item)


async def _wait_for_drains(drains: list[asyncio.Task[None]], killed: asyncio.Event) -> bool:
    """
    Wait until both streams close.

    Normally that happens when the command exits. After a kill the pipes
    get DRAIN_GRACE_SECONDS to close (a detached grandchild may hold them
    open); then the drains are cancelled and True is returned.
    """
    drained = asyncio.gather(*drains)
    kill_seen = asyncio.create_task(killed.wait())
    try:
        await asyncio.wait({drained, kill_seen}, return_when=asyncio.FIRST_COMPLETED)
        if not drained.done():
            try:
                await asyncio.wait_for(asyncio.shield(drained), DRAIN_GRACE_SECONDS)
            except TimeoutError:
                logger.warning("Output pipes still open after kill; abandoning drain")
                for task in drains:
                    task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await drained
                return True
        await drained
        return False
    finally:
        kill_seen.cancel()


async def run_command(
    command: str,
    timeout: Any = None,
    on_line: LineCallback | None = None,
) -> str:
    """
    Run a command through the shell and return its transcript.

    Args:
        command: Shell command line
        timeout: Bound in milliseconds, clamped to [1000, 300000]
        on_line: Called with every transcript line as it arrives

    Returns:
        The transcript (or "(no output)") followed by `[exit: <code>]`
        or `[TIMEOUT after <bound>ms]`
    """
    state = ExecutionState(timeout_ms=clamp_timeout(timeout))
    logger.debug(f"Running command with {state.timeout_ms}ms bound: {command}")

    try:
        process = await asyncio.create_subprocess_exec(
            *shell_argv(command),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            start_new_session=not IS_WINDOWS,
        )
    except OSError as e:
        raise ToolError(f"failed to start command: {e}") from e

    killed = asyncio.Event()

    def on_timeout() -> None:
        # A command that already exited wins the race; the kill still
        # reaps anything it left behind holding the pipes.
        if process.returncode is None:
            state.timed_out = True
            logger.warning(f"Command exceeded {state.timeout_ms}ms, killing pid {process.pid}")
        _kill(process)
        killed.set()

    loop = asyncio.get_running_loop()
    timer = loop.call_later(state.timeout_ms / 1000, on_timeout)

    if process.stdout is None or process.stderr is None:
        timer.cancel()
        _kill(process)
        await process.wait()
        raise ToolError("command output pipes were not created")

    queue: asyncio.Queue[str | None] = asyncio.Queue()
    drains = [
        asyncio.create_task(_drain(process.stdout, STDOUT_PREFIX, queue)),
        asyncio.create_task(_drain(process.stderr, STDERR_PREFIX, queue)),
    ]
    collector = asyncio.create_task(_collect(queue, state, on_line, producers=len(drains)))

    try:
        if await _wait_for_drains(drains, killed):
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(process.wait(), DRAIN_GRACE_SECONDS)
            _close_pipes(process)
            exit_code = process.returncode
        else:
            exit_code = await process.wait()
    finally:
        timer.cancel()
        if process.returncode is None:
            _kill(process)

    await collector
    state.finish(exit_code)
    return state.render()
