"""Build state management and result types.

State machine for a NAnt build step:
IDLE → BUILDING → SUCCEEDED | FAILED
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BuildState(str, Enum):
    """Build step states."""

    IDLE = "idle"
    BUILDING = "building"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class BuildErrorSeverity(str, Enum):
    """NAnt diagnostic severity levels."""

    ERROR = "error"
    WARNING = "warning"


@dataclass
class BuildDiagnostic:
    """Parsed diagnostic line reported by a NAnt task."""

    severity: BuildErrorSeverity
    code: str
    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None
    task: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
        }
        if self.file:
            result["file"] = self.file
        if self.line is not None:
            result["line"] = self.line
        if self.column is not None:
            result["column"] = self.column
        if self.task:
            result["task"] = self.task
        return result


# NAnt prefixes every line a task writes with the task name:
#   [csc] c:\src\Foo.cs(12,5): error CS0103: The name 'x' does not exist
NANT_DIAGNOSTIC_PATTERN = re.compile(
    r"^(?:\[(?P<task>[\w.-]+)\]\s+)?"
    r"(?P<file>[^(\[]+)\((?P<line>\d+),(?P<col>\d+)\):\s*"
    r"(?P<severity>error|warning)\s+(?P<code>\w+):\s*(?P<message>.+)$",
    re.IGNORECASE,
)

# Location-less variant: [task] error CODE: message
NANT_SIMPLE_PATTERN = re.compile(
    r"^(?:\[(?P<task>[\w.-]+)\]\s+)?"
    r"(?P<severity>error|warning)\s+(?P<code>\w+):\s*(?P<message>.+)$",
    re.IGNORECASE,
)


def parse_nant_output(output: str) -> list[BuildDiagnostic]:
    """Parse NAnt console output into structured diagnostics.

    Args:
        output: Combined stdout/stderr of a NAnt run

    Returns:
        List of parsed diagnostics, in output order
    """
    diagnostics: list[BuildDiagnostic] = []

    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue

        match = NANT_DIAGNOSTIC_PATTERN.match(line)
        if match:
            diagnostics.append(
                BuildDiagnostic(
                    severity=BuildErrorSeverity(match.group("severity").lower()),
                    code=match.group("code"),
                    message=match.group("message"),
                    file=match.group("file").strip(),
                    line=int(match.group("line")),
                    column=int(match.group("col")),
                    task=match.group("task"),
                )
            )
            continue

        match = NANT_SIMPLE_PATTERN.match(line)
        if match:
            diagnostics.append(
                BuildDiagnostic(
                    severity=BuildErrorSeverity(match.group("severity").lower()),
                    code=match.group("code"),
                    message=match.group("message"),
                    task=match.group("task"),
                )
            )

    return diagnostics


class BuildError(Exception):
    """Build step error that is reported to the build log, never to the host."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"error": str(self)}
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        return result


class ExecutableNotFoundError(BuildError):
    """The configured installation has no NAnt executable on disk."""

    def __init__(self, path: str):
        super().__init__(f"{path} doesn't exist")
        self.path = path


@dataclass
class BuildResult:
    """Result of one NAnt build step."""

    success: bool
    state: BuildState
    command: list[str] = field(default_factory=list)
    build_file: str = ""
    targets: str = ""
    exit_code: int | None = None
    output: str = ""
    diagnostics: list[BuildDiagnostic] = field(default_factory=list)
    duration_ms: float = 0.0
    error: str | None = None

    def __post_init__(self) -> None:
        """Parse diagnostics from output if not provided."""
        if not self.diagnostics and self.output:
            self.diagnostics = parse_nant_output(self.output)

    @property
    def errors(self) -> list[BuildDiagnostic]:
        """Get only error diagnostics."""
        return [d for d in self.diagnostics if d.severity == BuildErrorSeverity.ERROR]

    @property
    def warnings(self) -> list[BuildDiagnostic]:
        """Get only warning diagnostics."""
        return [d for d in self.diagnostics if d.severity == BuildErrorSeverity.WARNING]

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "success": self.success,
            "state": self.state.value,
            "command": self.command,
            "buildFile": self.build_file,
            "targets": self.targets,
            "errorCount": self.error_count,
            "warningCount": self.warning_count,
            "durationMs": round(self.duration_ms, 2),
        }
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        if self.diagnostics:
            result["diagnostics"] = [d.to_dict() for d in self.diagnostics]
        if self.error:
            result["error"] = self.error
        return result

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        status = "[OK] Build succeeded" if self.success else "[FAILED] Build failed"

        parts = [
            status,
            f"  Build file: {self.build_file or '(default)'}",
            f"  Targets: {self.targets or '(default)'}",
            f"  Duration: {self.duration_ms:.0f}ms",
        ]
        if self.exit_code is not None:
            parts.append(f"  Exit code: {self.exit_code}")
        if self.error:
            parts.append(f"  Error: {self.error}")
        if self.error_count > 0:
            parts.append(f"  Errors: {self.error_count}")
        if self.warning_count > 0:
            parts.append(f"  Warnings: {self.warning_count}")

        for err in self.errors[:5]:
            location = ""
            if err.file:
                location = err.file
                if err.line:
                    location += f"({err.line},{err.column or 0})"
                location += ": "
            parts.append(f"    {location}{err.code}: {err.message}")

        if self.error_count > 5:
            parts.append(f"    ... and {self.error_count - 5} more errors")

        return "\n".join(parts)
