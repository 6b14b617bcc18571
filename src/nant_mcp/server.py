"""MCP Server for running NAnt builds."""

from __future__ import annotations

import json
import logging

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .build.command import BuildInvocation
from .config import Settings
from .service import BuildService

logger = logging.getLogger(__name__)

# Global build service (single client mode)
_service: BuildService | None = None


def get_service(settings: Settings | None = None) -> BuildService:
    """Get or create the build service."""
    global _service
    if _service is None:
        _service = BuildService(settings)
    return _service


def reset_service() -> None:
    """Drop the global build service."""
    global _service
    _service = None


def create_server(settings: Settings | None = None) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        settings: Workspace and installations loaded at startup.
            Installations can be replaced later with configure_installations.
    """
    mcp = FastMCP("nant-mcp")
    service = get_service(settings)

    async def notify_changed(ctx: Context, uri: str) -> None:
        """Notify client that a resource has changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl(uri))
        except Exception:
            pass  # Notification failure shouldn't break the tool

    # ============== Build Tools ==============

    @mcp.tool()
    async def run_nant(
        ctx: Context,
        build_file: str = "",
        targets: str = "",
        properties: str = "",
        nant_name: str | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        variables: dict[str, str] | None = None,
    ) -> dict:
        """
        Run a NAnt build and wait for it to finish.

        The command line is:
            nant [-buildfile:<build_file>] [-D:key=value ...] [targets ...]
        On Windows it is run through cmd.exe so the exit code is reported.

        Args:
            build_file: Build file path. If empty, NAnt looks for a *.build file in cwd.
            targets: Whitespace separated targets (default target if empty)
            properties: Property definitions, one key=value per line
            nant_name: Configured installation to use (NAnt on PATH if omitted)
            cwd: Working directory, relative to the workspace or absolute
            env: Extra environment variables for the build
            variables: Values for ${NAME} references in properties
        """
        try:
            invocation = BuildInvocation(
                build_file=build_file,
                targets=targets,
                properties=properties,
                installation_name=nant_name,
            )
            result = await service.run(invocation, cwd=cwd, env=env, variables=variables)
            await notify_changed(ctx, "nant://last-result")
            await notify_changed(ctx, "nant://output")
            return {"success": result.success, "data": result.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_build_result(include_output: bool = False) -> dict:
        """
        Get the result of the last NAnt build.

        Args:
            include_output: Also return the full build log
        """
        try:
            result = service.last_result
            if result is None:
                return {"success": True, "data": None}
            data = result.to_dict()
            data["summary"] = result.to_summary()
            if include_output:
                data["output"] = result.output
            return {"success": True, "data": data}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Installation Tools ==============

    @mcp.tool()
    async def list_installations() -> dict:
        """List configured NAnt installations and whether their executable exists."""
        try:
            return {"success": True, "data": service.list_installations()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def configure_installations(
        ctx: Context, names: list[str], homes: list[str]
    ) -> dict:
        """
        Replace all configured NAnt installations.

        names[i] is paired with homes[i]; extra entries in the longer list and
        pairs with an empty name or home are ignored.

        Args:
            names: Installation names
            homes: Installation home directories (containing bin/)
        """
        try:
            installations = service.configure_installations(names, homes)
            await notify_changed(ctx, "nant://installations")
            return {"success": True, "data": [i.to_dict() for i in installations]}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def check_nant_home(path: str) -> dict:
        """
        Check that a directory is a NAnt installation (contains bin/NAnt.exe).

        Args:
            path: Candidate NAnt home directory
        """
        try:
            return {"success": True, "data": service.check_home(path).to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Prompts ==============

    @mcp.prompt(
        name="nant",
        description="Workflow guide for running NAnt builds",
    )
    def nant_prompt() -> list[dict]:
        """Start here when building with NAnt."""
        return [
            {
                "role": "user",
                "content": """# NAnt Build Guide

### 1. Check Installations
```
list_installations()                 # Configured installations
check_nant_home(path="C:/nant-0.92") # Validate a new one
configure_installations(names=["0.92"], homes=["C:/nant-0.92"])
```

### 2. Run a Build
```
run_nant(
    build_file="default.build",
    targets="clean compile test",
    properties="configuration=Release\\nversion=${BUILD_NUMBER}",
    variables={"BUILD_NUMBER": "42"},
    nant_name="0.92",
)
```

### 3. Report
```
get_build_result(include_output=True)  # SUMMARIZE errors for the user
```

A build fails when NAnt exits with a nonzero code, when the installation has
no executable, or when the process cannot be started. The reason is always
in the build output.
""",
            }
        ]

    # ============== Resources ==============

    @mcp.resource("nant://installations", mime_type="application/json")
    async def installations_resource() -> str:
        """Configured NAnt installations (JSON).

        Updates when: configure_installations is called.
        """
        return json.dumps(service.list_installations(), indent=2)

    @mcp.resource("nant://last-result", mime_type="application/json")
    async def last_result_resource() -> str:
        """Result of the last build (JSON), or null."""
        result = service.last_result
        return json.dumps(result.to_dict() if result else None, indent=2)

    @mcp.resource("nant://output", mime_type="text/plain")
    async def output_resource() -> str:
        """Output of the last build (plain text)."""
        return service.output

    logger.info("NAnt MCP Server initialized")
    return mcp
