"""NAnt build step.

Provides:
- Installation registry with first-match name resolution
- Command line construction (build file, -D: properties, targets)
- cmd.exe wrapping on Windows so exit codes propagate
- Process execution with streamed output and launch-failure reporting
"""

from .builder import NantBuilder
from .command import BuildInvocation, build_arguments, to_command_string
from .installation import (
    HomeValidation,
    InstallationRegistry,
    NantInstallation,
    check_nant_home,
    executable_file,
    executable_name,
)
from .runner import (
    ExecutionContext,
    LocalExecutionContext,
    OutputStreamError,
    ProcessRunner,
    RunOutcome,
    RunState,
)
from .state import BuildError, BuildResult, BuildState, ExecutableNotFoundError

__all__ = [
    "NantInstallation",
    "InstallationRegistry",
    "HomeValidation",
    "check_nant_home",
    "executable_name",
    "executable_file",
    "BuildInvocation",
    "build_arguments",
    "to_command_string",
    "ExecutionContext",
    "LocalExecutionContext",
    "OutputStreamError",
    "ProcessRunner",
    "RunOutcome",
    "RunState",
    "BuildState",
    "BuildResult",
    "BuildError",
    "ExecutableNotFoundError",
    "NantBuilder",
]
