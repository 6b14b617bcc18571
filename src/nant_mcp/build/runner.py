"""Process execution for NAnt builds.

State machine for one run:
NOT_STARTED → RUNNING → EXITED | LAUNCH_FAILED

Launch failures are reported to the build output and returned as a failed
outcome; they are never raised to the caller. A process that started is
always reaped, whether its output was read to the end or not.
"""

from __future__ import annotations

import asyncio
import logging
import os
import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Longest output line passed to the sink; the rest of the line is dropped
MAX_OUTPUT_LINE: int = 10_000

OutputSink = Callable[[str], None]


class RunState(str, Enum):
    """Process run states."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    EXITED = "exited"
    LAUNCH_FAILED = "launch_failed"


@runtime_checkable
class ExecutionContext(Protocol):
    """Where a build runs: the local machine or an agent."""

    def exists(self, path: str) -> bool:
        """Whether ``path`` exists on the build machine."""
        ...

    async def run(
        self,
        args: list[str],
        env: Mapping[str, str] | None,
        cwd: str | None,
        sink: OutputSink,
    ) -> int:
        """Run ``args`` to completion, streaming output to ``sink``.

        Returns:
            Process exit code

        Raises:
            OSError: If the process cannot be started
            ValueError: If the arguments cannot be passed to the OS
            OutputStreamError: If the process started but its output could
                not be delivered; the process has been stopped
        """
        ...


class OutputStreamError(Exception):
    """Output of a started process could not be read or delivered."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code


def merge_environment(env: Mapping[str, str] | None) -> dict[str, str]:
    """Overlay ``env`` on the current process environment."""
    merged = dict(os.environ)
    if env:
        merged.update(env)
    return merged


async def read_output_line(stream: asyncio.StreamReader) -> bytes:
    """Next line from ``stream``, or ``b""`` at EOF.

    Lines longer than the stream buffer are drained chunk by chunk; only
    about ``MAX_OUTPUT_LINE`` bytes of such a line are kept.
    """
    head = b""
    while True:
        try:
            return head + await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            return head + e.partial
        except asyncio.LimitOverrunError as e:
            chunk = await stream.read(e.consumed)
            if len(head) <= MAX_OUTPUT_LINE:
                head += chunk[: MAX_OUTPUT_LINE + 1 - len(head)]


async def _stop_process(process: asyncio.subprocess.Process) -> int:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    return await process.wait()


class LocalExecutionContext:
    """Runs builds on this machine with asyncio subprocesses."""

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    async def run(
        self,
        args: list[str],
        env: Mapping[str, str] | None,
        cwd: str | None,
        sink: OutputSink,
    ) -> int:
        # Never use shell=True; cmd.exe wrapping is explicit in the args
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=cwd,
            env=merge_environment(env),
        )

        try:
            if process.stdout is not None:
                while True:
                    line = await read_output_line(process.stdout)
                    if not line:
                        break
                    decoded = line.decode("utf-8", errors="replace")
                    if len(decoded) > MAX_OUTPUT_LINE:
                        decoded = decoded[:MAX_OUTPUT_LINE] + "...[truncated]\n"
                    sink(decoded)

            await process.wait()
        except asyncio.CancelledError:
            # Job aborted: take the child down with it
            logger.warning(f"Build aborted, killing process {process.pid}")
            await _stop_process(process)
            raise
        except Exception as e:
            logger.error(f"Output of process {process.pid} failed, killing it: {e}")
            exit_code = await _stop_process(process)
            raise OutputStreamError(str(e), exit_code) from e

        return process.returncode if process.returncode is not None else -1


@dataclass
class RunOutcome:
    """Interpreted result of one process run."""

    state: RunState
    exit_code: int | None = None
    launch_error: str | None = None
    output_error: str | None = None

    @property
    def success(self) -> bool:
        """True iff the process ran, its output was delivered and it exited with code 0."""
        return (
            self.state == RunState.EXITED
            and self.exit_code == 0
            and self.output_error is None
        )

    @property
    def error(self) -> str | None:
        return self.launch_error or self.output_error


class ProcessRunner:
    """Runs an argument list and interprets the result.

    One runner per invocation; no retries.
    """

    def __init__(self, context: ExecutionContext | None = None):
        self._context = context or LocalExecutionContext()
        self._state = RunState.NOT_STARTED

    @property
    def state(self) -> RunState:
        return self._state

    async def run(
        self,
        args: list[str],
        env: Mapping[str, str] | None,
        cwd: str | None,
        sink: OutputSink,
    ) -> RunOutcome:
        """Run ``args`` in ``cwd`` with ``env`` merged into the environment.

        Args:
            args: Command and arguments
            env: Job environment overriding the current one
            cwd: Working directory
            sink: Receives output lines as they are produced

        Returns:
            Run outcome; launch and output failures are folded into it
        """
        if self._state != RunState.NOT_STARTED:
            raise RuntimeError(f"Runner already used (state: {self._state.value})")

        self._state = RunState.RUNNING
        try:
            exit_code = await self._context.run(args, env, cwd, sink)
        except OutputStreamError as e:
            # The process ran; the sink is not written to again
            self._state = RunState.EXITED
            logger.error(f"Build output lost, process stopped with code {e.exit_code}: {e}")
            return RunOutcome(state=RunState.EXITED, exit_code=e.exit_code, output_error=str(e))
        except (OSError, ValueError) as e:
            self._state = RunState.LAUNCH_FAILED
            logger.error(f"Failed to launch {args[0] if args else '<empty>'}: {e}")
            sink(f"{e}\n")
            sink("FATAL: command execution failed\n")
            sink("".join(traceback.format_exception(type(e), e, e.__traceback__)))
            return RunOutcome(state=RunState.LAUNCH_FAILED, launch_error=str(e))

        self._state = RunState.EXITED
        logger.info(f"Process exited with code {exit_code}")
        return RunOutcome(state=RunState.EXITED, exit_code=exit_code)
