"""NAnt installations and the registry that resolves them by name."""

from __future__ import annotations

import logging
import ntpath
import os
import posixpath
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from .runner import ExecutionContext

logger = logging.getLogger(__name__)

NANT_EXECUTABLE_WINDOWS: Final[str] = "NAnt.exe"
NANT_EXECUTABLE_UNIX: Final[str] = "nant"


def is_unix_platform() -> bool:
    """Whether the local machine uses Unix-style executables and paths."""
    return os.name != "nt"


def executable_name(is_unix: bool | None = None) -> str:
    """Name of the NAnt executable on the given platform.

    Args:
        is_unix: Target platform; defaults to the local one
    """
    if is_unix is None:
        is_unix = is_unix_platform()
    return NANT_EXECUTABLE_UNIX if is_unix else NANT_EXECUTABLE_WINDOWS


def executable_file(home: str, is_unix: bool | None = None) -> str:
    """Path of the NAnt executable inside an installation directory.

    Joined with the target platform's path rules, so a Windows home can be
    resolved on a Unix controller and the other way round.
    """
    if is_unix is None:
        is_unix = is_unix_platform()
    pathmod = posixpath if is_unix else ntpath
    return pathmod.join(home, "bin", executable_name(is_unix))


@dataclass(frozen=True)
class NantInstallation:
    """A named, locally installed copy of NAnt."""

    name: str
    home: str

    def executable_file(self, is_unix: bool | None = None) -> str:
        """Path of this installation's NAnt executable."""
        return executable_file(self.home, is_unix)

    def exists(self, context: ExecutionContext, is_unix: bool | None = None) -> bool:
        """Whether the executable is present where the build will run."""
        return context.exists(self.executable_file(is_unix))

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        return {"name": self.name, "home": self.home}


class InstallationRegistry:
    """Holds the configured installations.

    The held tuple is never mutated; ``replace_all`` swaps it in a single
    assignment, so readers see either the old or the new list.
    """

    def __init__(self, installations: Iterable[NantInstallation] = ()):
        self._installations: tuple[NantInstallation, ...] = tuple(installations)

    @property
    def installations(self) -> tuple[NantInstallation, ...]:
        """Current installations."""
        return self._installations

    def snapshot(self) -> tuple[NantInstallation, ...]:
        """Immutable view to hand to a single build."""
        return self._installations

    def resolve(self, name: str | None) -> NantInstallation | None:
        """Find an installation by exact name.

        Returns:
            The first installation with that name, or None if there is none
            (callers then fall back to the executable on PATH)
        """
        return resolve_installation(self._installations, name)

    def replace_all(self, installations: Iterable[NantInstallation]) -> None:
        """Replace every installation at once (a configuration save)."""
        new = tuple(installations)
        self._installations = new
        logger.info(f"Installations replaced: {[i.name for i in new]}")

    def __len__(self) -> int:
        return len(self._installations)

    @staticmethod
    def from_form(
        names: Sequence[str] | None, homes: Sequence[str] | None
    ) -> list[NantInstallation]:
        """Build installations from parallel name/home arrays.

        Only as many pairs as the shorter array holds are considered, and
        pairs with an empty name or home are skipped.
        """
        if names is None or homes is None:
            return []
        installations = []
        for name, home in zip(names, homes):
            if not name or not home:
                continue
            installations.append(NantInstallation(name=name, home=home))
        return installations


def resolve_installation(
    installations: Iterable[NantInstallation], name: str | None
) -> NantInstallation | None:
    """First installation in ``installations`` named ``name``."""
    if name is None:
        return None
    for installation in installations:
        if installation.name == name:
            return installation
    return None


@dataclass(frozen=True)
class HomeValidation:
    """Outcome of checking a candidate NAnt home directory."""

    ok: bool
    message: str | None = None

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {"ok": self.ok}
        if self.message:
            result["message"] = self.message
        return result


def check_nant_home(value: str | None) -> HomeValidation:
    """Check that ``value`` is a NAnt installation directory.

    The directory must exist and contain ``bin/NAnt.exe``.
    """
    path = value or ""
    if not os.path.isdir(path):
        return HomeValidation(ok=False, message=f"{path} is not a directory")

    nant_exe = os.path.join(path, "bin", NANT_EXECUTABLE_WINDOWS)
    if not os.path.exists(nant_exe):
        return HomeValidation(
            ok=False, message=f"{path} is not a NAnt installation directory."
        )

    return HomeValidation(ok=True)
