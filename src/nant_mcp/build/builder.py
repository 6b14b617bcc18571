"""NAnt build step.

Ties together installation lookup, command construction and process
execution for one configured job step:

    builder = NantBuilder(BuildInvocation("build.xml", "compile test"), registry.snapshot())
    result = await builder.perform(LocalExecutionContext(), env, workspace, sink)
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping

from .command import BuildInvocation, to_command_string
from .installation import NantInstallation, is_unix_platform, resolve_installation
from .runner import ExecutionContext, OutputSink, ProcessRunner
from .state import BuildError, BuildResult, BuildState

logger = logging.getLogger(__name__)


class NantBuilder:
    """One NAnt build step bound to a snapshot of configured installations."""

    def __init__(
        self,
        invocation: BuildInvocation,
        installations: Iterable[NantInstallation] = (),
    ):
        """Initialize builder.

        Args:
            invocation: Build file, targets, properties and installation name
            installations: Installations configured when the build started
        """
        self._invocation = invocation
        self._installations = tuple(installations)
        self._state = BuildState.IDLE
        self._state_listeners: list[Callable[[BuildState], None]] = []

    @property
    def invocation(self) -> BuildInvocation:
        return self._invocation

    @property
    def state(self) -> BuildState:
        """Current build state."""
        return self._state

    def on_state_change(self, listener: Callable[[BuildState], None]) -> None:
        """Register state change listener."""
        self._state_listeners.append(listener)

    def _set_state(self, new_state: BuildState) -> None:
        """Update state and notify listeners."""
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.info(f"Build state: {old_state.value} -> {new_state.value}")
            for listener in self._state_listeners:
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("State listener error")

    def get_installation(self) -> NantInstallation | None:
        """Installation to invoke, or None for the executable on PATH."""
        return resolve_installation(self._installations, self._invocation.installation_name)

    async def perform(
        self,
        context: ExecutionContext,
        env: Mapping[str, str] | None,
        workspace: str | None,
        sink: OutputSink,
        is_unix: bool | None = None,
        variables: Mapping[str, str] | None = None,
    ) -> BuildResult:
        """Run the build step.

        Every failure (missing executable, launch error, nonzero exit) is
        written to ``sink`` and returned as an unsuccessful result.

        Args:
            context: Where the build runs
            env: Job environment
            workspace: Working directory for NAnt
            sink: Build log
            is_unix: Build machine platform; defaults to the local one
            variables: Job variables for property substitution

        Returns:
            Build result
        """
        if is_unix is None:
            is_unix = is_unix_platform()

        invocation = self._invocation
        output: list[str] = []

        def tee(text: str) -> None:
            output.append(text)
            sink(text)

        self._set_state(BuildState.BUILDING)
        start_time = time.perf_counter()

        installation = self.get_installation()
        if installation is None and invocation.installation_name:
            tee(
                f"NAnt installation '{invocation.installation_name}' is not configured, "
                f"using the default executable on PATH\n"
            )

        try:
            args = invocation.arguments(
                installation, is_unix=is_unix, variables=variables, context=context
            )
        except (BuildError, OSError) as e:
            tee(f"ERROR: {e}\n")
            return self._finish(start_time, output, success=False, error=str(e))

        tee(f"Executing command: {to_command_string(args)}\n")

        try:
            outcome = await ProcessRunner(context).run(args, env, workspace, tee)
        except asyncio.CancelledError:
            tee("Build aborted\n")
            self._set_state(BuildState.FAILED)
            raise

        if outcome.output_error:
            # Recorded in the result only; the sink may be what failed
            output.append(f"ERROR: build output failed: {outcome.output_error}\n")

        return self._finish(
            start_time,
            output,
            success=outcome.success,
            command=args,
            exit_code=outcome.exit_code,
            error=outcome.error,
        )

    def _finish(
        self,
        start_time: float,
        output: list[str],
        success: bool,
        command: list[str] | None = None,
        exit_code: int | None = None,
        error: str | None = None,
    ) -> BuildResult:
        duration = (time.perf_counter() - start_time) * 1000
        result = BuildResult(
            success=success,
            state=BuildState.SUCCEEDED if success else BuildState.FAILED,
            command=command or [],
            build_file=self._invocation.build_file,
            targets=self._invocation.targets,
            exit_code=exit_code,
            output="".join(output),
            duration_ms=duration,
            error=error,
        )
        self._set_state(result.state)
        return result
