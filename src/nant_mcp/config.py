"""Server configuration from the command line and environment.

Sources, in order:
1. Environment variables (NANT_INSTALLATIONS, NANT_WORKSPACE)
2. Command line (--installation NAME=HOME, --workspace)

Installations from both sources are kept; on duplicate names the first one
wins, so environment entries shadow command line ones.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from .build.installation import NantInstallation

logger = logging.getLogger(__name__)

INSTALLATIONS_ENV_VAR = "NANT_INSTALLATIONS"
WORKSPACE_ENV_VAR = "NANT_WORKSPACE"


@dataclass
class Settings:
    """Resolved server settings."""

    workspace: str | None = None
    """Default working directory for builds."""

    installations: list[NantInstallation] = field(default_factory=list)
    """Configured NAnt installations."""


def parse_installation_spec(spec: str) -> NantInstallation:
    """Parse a ``NAME=HOME`` installation entry.

    Raises:
        ValueError: If the entry has no name or no home
    """
    name, sep, home = spec.partition("=")
    name = name.strip()
    home = home.strip()
    if not sep or not name or not home:
        raise ValueError(f"Invalid installation '{spec}', expected NAME=HOME")
    return NantInstallation(name=name, home=home)


def installations_from_env(environ: Mapping[str, str] | None = None) -> list[NantInstallation]:
    """Installations listed in NANT_INSTALLATIONS, separated by os.pathsep."""
    environ = os.environ if environ is None else environ
    value = environ.get(INSTALLATIONS_ENV_VAR, "")
    return [
        parse_installation_spec(entry)
        for entry in value.split(os.pathsep)
        if entry.strip()
    ]


def load_settings(
    workspace: str | None = None,
    installation_specs: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Combine environment and command line settings.

    Args:
        workspace: --workspace value; falls back to NANT_WORKSPACE
        installation_specs: --installation values
        environ: Environment to read (defaults to os.environ)

    Raises:
        ValueError: If an installation entry is malformed
    """
    environ = os.environ if environ is None else environ

    installations = installations_from_env(environ)
    installations.extend(parse_installation_spec(s) for s in installation_specs or [])

    settings = Settings(
        workspace=workspace or environ.get(WORKSPACE_ENV_VAR) or None,
        installations=installations,
    )
    logger.debug(
        f"Settings loaded: workspace={settings.workspace}, "
        f"installations={[i.name for i in installations]}"
    )
    return settings
