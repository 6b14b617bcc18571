"""NAnt command line construction.

Produces the argument list for one NAnt run:

    <exe> [-buildfile:<file>] [-D:<key>=<value> ...] [<target> ...]

On Windows the list is re-wrapped into ``cmd.exe /C "..."`` so the exit
code survives and quoting of multi-token commands is preserved.
"""

from __future__ import annotations

import logging
import re
import shlex
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Final

from .installation import NantInstallation, executable_name, is_unix_platform
from .runner import ExecutionContext, LocalExecutionContext
from .state import ExecutableNotFoundError

logger = logging.getLogger(__name__)

BUILDFILE_PREFIX: Final[str] = "-buildfile:"
PROPERTY_PREFIX: Final[str] = "-D:"

# Exit code passthrough for cmd.exe
WINDOWS_EXIT_SUFFIX: Final[tuple[str, ...]] = ("&&", "exit", "%ERRORLEVEL%")

# ${NAME} or $NAME
VARIABLE_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"\$\{([A-Za-z0-9_.]+)\}|\$([A-Za-z0-9_]+)"
)

TARGET_SEPARATOR_PATTERN: Final[re.Pattern[str]] = re.compile(r"[\t\r\n]+")

_PROPERTY_WHITESPACE = " \t\f"
_PROPERTY_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_PROPERTY_ESCAPE_PATTERN = re.compile(r"\\(u[0-9a-fA-F]{4}|.)", re.DOTALL)


@dataclass(frozen=True)
class BuildInvocation:
    """What one build step asks NAnt to do.

    Empty or whitespace-only fields are normalized to an empty string and an
    empty installation name to None (the executable on PATH).
    """

    build_file: str = ""
    targets: str = ""
    properties: str = ""
    installation_name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "build_file", _blank_to_empty(self.build_file))
        object.__setattr__(self, "targets", _blank_to_empty(self.targets))
        object.__setattr__(self, "properties", _blank_to_empty(self.properties).strip())
        if not self.installation_name:
            object.__setattr__(self, "installation_name", None)

    def arguments(
        self,
        installation: NantInstallation | None,
        is_unix: bool | None = None,
        variables: Mapping[str, str] | None = None,
        context: ExecutionContext | None = None,
    ) -> list[str]:
        """Argument list for this invocation."""
        return build_arguments(
            installation,
            self.build_file,
            self.targets,
            self.properties,
            is_unix=is_unix,
            variables=variables,
            context=context,
        )


def _blank_to_empty(value: str | None) -> str:
    if value is None or not value.strip():
        return ""
    return value


def replace_variables(
    text: str,
    variables: Mapping[str, str],
    transform: Callable[[str], str] | None = None,
) -> str:
    """Substitute ``${NAME}`` and ``$NAME`` references.

    Unknown names are left as written.
    """

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2)
        value = variables.get(name)
        if value is None:
            return match.group(0)
        return transform(value) if transform else value

    return VARIABLE_PATTERN.sub(substitute, text)


def _escape_backslashes(value: str) -> str:
    return value.replace("\\", "\\\\")


def _is_continued(line: str) -> bool:
    trailing = len(line) - len(line.rstrip("\\"))
    return trailing % 2 == 1


def _logical_lines(text: str) -> Iterator[str]:
    pending: str | None = None
    for raw in text.splitlines():
        line = raw.lstrip(_PROPERTY_WHITESPACE)
        if pending is None and (not line or line[0] in "#!"):
            continue
        if _is_continued(line):
            pending = (pending or "") + line[:-1]
            continue
        yield (pending or "") + line
        pending = None
    if pending is not None:
        yield pending


def _unescape(text: str) -> str:
    def replace(match: re.Match[str]) -> str:
        escaped = match.group(1)
        if len(escaped) == 5:
            return chr(int(escaped[1:], 16))
        return _PROPERTY_ESCAPES.get(escaped, escaped)

    return _PROPERTY_ESCAPE_PATTERN.sub(replace, text)


def _split_entry(line: str) -> tuple[str, str]:
    i = 0
    while i < len(line):
        char = line[i]
        if char == "\\":
            i += 2
            continue
        if char in "=:" or char in _PROPERTY_WHITESPACE:
            break
        i += 1

    key = line[:i]
    rest = line[i:].lstrip(_PROPERTY_WHITESPACE)
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(_PROPERTY_WHITESPACE)
    return _unescape(key), _unescape(rest)


def parse_properties(text: str | None) -> dict[str, str]:
    """Parse Java-properties formatted text.

    One entry per logical line; keys end at the first unescaped ``=``, ``:``
    or whitespace. Definition order is kept and a repeated key keeps its
    first position with the last value.
    """
    properties: dict[str, str] = {}
    if not text:
        return properties
    for line in _logical_lines(text):
        key, value = _split_entry(line)
        properties[key] = value
    return properties


def property_arguments(
    properties: str | None, variables: Mapping[str, str] | None = None
) -> list[str]:
    """``-D:key=value`` tokens for a property string.

    Job variables are substituted before parsing, with backslashes in their
    values escaped so they survive property unescaping.
    """
    if not properties:
        return []
    if variables:
        properties = replace_variables(properties, variables, _escape_backslashes)
    return [
        f"{PROPERTY_PREFIX}{key}={value}"
        for key, value in parse_properties(properties).items()
    ]


def normalize_targets(targets: str | None) -> str:
    """Collapse tab, CR and LF runs to single spaces and trim."""
    if not targets:
        return ""
    return TARGET_SEPARATOR_PATTERN.sub(" ", targets).strip()


def tokenize_targets(targets: str | None) -> list[str]:
    """Split a target list on whitespace; quotes group words."""
    normalized = normalize_targets(targets)
    if not normalized:
        return []

    lexer = shlex.shlex(normalized, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    # Backslashes are literal (Windows paths)
    lexer.escape = ""
    try:
        return list(lexer)
    except ValueError as e:
        logger.warning(f"Could not tokenize targets {normalized!r} ({e}), splitting on whitespace")
        return normalized.split()


def to_command_string(args: list[str]) -> str:
    """Join arguments, double-quoting empty ones and ones containing a space."""
    parts = []
    for arg in args:
        if not arg or " " in arg:
            parts.append(f'"{arg}"')
        else:
            parts.append(arg)
    return " ".join(parts)


def wrap_for_windows(args: list[str]) -> list[str]:
    """Wrap a command into ``cmd.exe /C "<command> && exit %ERRORLEVEL%"``.

    cmd.exe needs one extra pair of quotes around the whole command for its
    own quote handling; see ``cmd /?``.
    """
    command = to_command_string([*args, *WINDOWS_EXIT_SUFFIX])
    return ["cmd.exe", "/C", f'"{command}"']


def resolve_executable(
    installation: NantInstallation | None,
    is_unix: bool,
    context: ExecutionContext | None = None,
) -> str:
    """Executable token for the command line.

    Raises:
        ExecutableNotFoundError: If the installation has no executable
    """
    if installation is None:
        return executable_name(is_unix)

    path = installation.executable_file(is_unix)
    context = context or LocalExecutionContext()
    if not context.exists(path):
        raise ExecutableNotFoundError(path)
    return path


def build_arguments(
    installation: NantInstallation | None,
    build_file: str | None,
    targets: str | None,
    properties: str | None,
    is_unix: bool | None = None,
    variables: Mapping[str, str] | None = None,
    context: ExecutionContext | None = None,
) -> list[str]:
    """Build the NAnt argument list.

    Args:
        installation: Installation to use, or None for the executable on PATH
        build_file: Build file path; NAnt searches for ``*.build`` if empty
        targets: Whitespace separated target names
        properties: Property definitions in Java-properties format
        is_unix: Target platform; defaults to the local one
        variables: Job variables substituted into the properties
        context: Where existence of the executable is checked

    Returns:
        Complete command line as list

    Raises:
        ExecutableNotFoundError: If the installation has no executable
    """
    if is_unix is None:
        is_unix = is_unix_platform()

    args = [resolve_executable(installation, is_unix, context)]

    if build_file and build_file.strip():
        args.append(f"{BUILDFILE_PREFIX}{build_file}")

    args.extend(property_arguments(properties, variables))
    args.extend(tokenize_targets(targets))

    if not is_unix:
        args = wrap_for_windows(args)

    return args
