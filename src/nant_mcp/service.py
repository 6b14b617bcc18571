"""Build service - owns the installation registry and runs NAnt build steps.

Each build gets a snapshot of the registry taken when it starts, so a
configuration save during a build does not affect it.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections import deque
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from .build.builder import NantBuilder
from .build.command import BuildInvocation
from .build.installation import (
    HomeValidation,
    InstallationRegistry,
    NantInstallation,
    check_nant_home,
)
from .build.runner import ExecutionContext, LocalExecutionContext
from .build.state import BuildResult, BuildState
from .config import Settings

logger = logging.getLogger(__name__)

# Lines of build output kept for the output resource
MAX_OUTPUT_LINES: int = 5_000


class BuildService:
    """Runs NAnt build steps against the configured installations.

    Builds are serialized with an asyncio.Lock; one build runs at a time, so
    output, state and last result always belong to the same build.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        context: ExecutionContext | None = None,
    ):
        """Initialize service.

        Args:
            settings: Workspace and installations; empty defaults if not provided
            context: Where builds run (local machine if not provided)
        """
        self._settings = settings or Settings()
        self._registry = InstallationRegistry(self._settings.installations)
        self._context = context or LocalExecutionContext()
        self._output: deque[str] = deque(maxlen=MAX_OUTPUT_LINES)
        self._last_result: BuildResult | None = None
        self._state = BuildState.IDLE
        self._state_listeners: list[Callable[[BuildState], None]] = []
        self._lock = asyncio.Lock()

    @property
    def registry(self) -> InstallationRegistry:
        return self._registry

    @property
    def workspace(self) -> str | None:
        """Default working directory for builds."""
        return self._settings.workspace

    @property
    def state(self) -> BuildState:
        """State of the most recent build."""
        return self._state

    @property
    def last_result(self) -> BuildResult | None:
        """Last build result."""
        return self._last_result

    @property
    def output(self) -> str:
        """Output of the most recent build."""
        return "".join(self._output)

    def on_state_change(self, listener: Callable[[BuildState], None]) -> None:
        """Register state change listener."""
        self._state_listeners.append(listener)

    def _on_builder_state(self, state: BuildState) -> None:
        self._state = state
        for listener in self._state_listeners:
            try:
                listener(state)
            except Exception:
                logger.exception("State listener error")

    def list_installations(self) -> list[dict[str, Any]]:
        """Configured installations with whether their executable exists."""
        return [
            {**i.to_dict(), "exists": i.exists(self._context)}
            for i in self._registry.installations
        ]

    def configure_installations(
        self, names: Sequence[str] | None, homes: Sequence[str] | None
    ) -> list[NantInstallation]:
        """Replace all installations from parallel name/home arrays."""
        installations = InstallationRegistry.from_form(names, homes)
        self._registry.replace_all(installations)
        return installations

    def check_home(self, path: str | None) -> HomeValidation:
        """Check a candidate NAnt home directory."""
        return check_nant_home(path)

    def resolve_workspace(self, cwd: str | None) -> str | None:
        """Working directory for a build: ``cwd`` (relative to the workspace) or the workspace."""
        if not cwd:
            return self.workspace
        if not os.path.isabs(cwd) and self.workspace:
            return os.path.join(self.workspace, cwd)
        return cwd

    async def run(
        self,
        invocation: BuildInvocation,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        variables: Mapping[str, str] | None = None,
        sink: Callable[[str], None] | None = None,
    ) -> BuildResult:
        """Run one NAnt build step.

        Args:
            invocation: What to build
            cwd: Working directory (defaults to the workspace)
            env: Environment overrides for the build
            variables: Job variables substituted into properties
            sink: Extra receiver for build output lines

        Returns:
            Build result; failures are results, not exceptions
        """
        workspace = self.resolve_workspace(cwd)

        def collect(text: str) -> None:
            self._output.append(text)
            if sink is not None:
                sink(text)

        if self._lock.locked():
            logger.info("Build in progress, waiting for it to finish")

        async with self._lock:
            # Snapshot taken when the build actually starts
            builder = NantBuilder(invocation, self._registry.snapshot())
            builder.on_state_change(self._on_builder_state)
            self._output.clear()

            logger.info(
                f"Running NAnt (build file: {invocation.build_file or '(default)'}, "
                f"targets: {invocation.targets or '(default)'}, cwd: {workspace})"
            )
            result = await builder.perform(
                self._context,
                env,
                workspace,
                collect,
                variables=variables,
            )
            self._last_result = result
            logger.info(result.to_summary())
            return result
