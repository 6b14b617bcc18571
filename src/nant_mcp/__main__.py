"""Entry point for nant-mcp server."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Iterator

from .config import load_settings
from .server import create_server


def find_workspace_root(root: str | Path | None = None) -> str:
    """Find the NAnt workspace by walking up from CWD.

    Searches for markers in this order:
    1. *.build (NAnt build file)
    2. .git (git root as fallback)

    Falls back to CWD if no marker is found.

    Args:
        root: If provided, constrains search to this directory and below.
              Search stops at this boundary.

    Returns:
        Absolute path to workspace root
    """
    current = Path.cwd().resolve()
    boundary = Path(root).resolve() if root is not None else None

    def ancestors() -> Iterator[Path]:
        """Yield current directory and ancestors up to boundary."""
        yield current
        if boundary is not None and current == boundary:
            return
        for parent in current.parents:
            yield parent
            if boundary is not None and parent == boundary:
                return

    for directory in ancestors():
        if any(directory.glob("*.build")):
            return str(directory)

    for directory in ancestors():
        if (directory / ".git").exists():  # .git can be file (worktree) or dir
            return str(directory)

    return str(current)


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="NAnt MCP Server - Run NAnt builds via MCP"
    )
    parser.add_argument(
        "--workspace",
        type=str,
        default=None,
        help="Default working directory for builds.",
    )
    parser.add_argument(
        "--workspace-from-cwd",
        action="store_true",
        default=False,
        help="Auto-detect the workspace from the current working directory. "
        "Searches upward for *.build files or a .git marker. "
        "Cannot be used with --workspace.",
    )
    parser.add_argument(
        "--installation",
        action="append",
        default=[],
        metavar="NAME=HOME",
        help="NAnt installation; can be given more than once. "
        "HOME is the directory containing bin/.",
    )
    return parser.parse_args(argv)


async def main() -> None:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args()

    if args.workspace_from_cwd:
        if args.workspace is not None:
            logger.error("--workspace-from-cwd cannot be used with --workspace")
            sys.exit(1)
        workspace = find_workspace_root()
        logger.info(f"Auto-detected workspace: {workspace}")
    else:
        workspace = args.workspace

    try:
        settings = load_settings(workspace=workspace, installation_specs=args.installation)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"Starting NAnt MCP Server (workspace: {settings.workspace or os.getcwd()})...")

    mcp = create_server(settings)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        logger.info("Server stopped")


def run() -> None:
    """Run the server."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
