"""Tests for the build service."""

import asyncio
import os
from unittest.mock import AsyncMock, MagicMock

import pytest

from nant_mcp.build.command import BuildInvocation
from nant_mcp.build.installation import NantInstallation
from nant_mcp.build.state import BuildState
from nant_mcp.config import Settings
from nant_mcp.service import BuildService


def make_context(exit_code: int = 0, output: str = "", exists: bool = True):
    """Execution context double writing ``output`` to the sink."""
    context = MagicMock()
    context.exists = MagicMock(return_value=exists)

    async def run(args, env, cwd, sink):
        for line in output.splitlines(keepends=True):
            sink(line)
        return exit_code

    context.run = AsyncMock(side_effect=run)
    return context


class TestBuildServiceInstallations:
    """Tests for installation management."""

    def test_initial_installations_from_settings(self):
        """Test installations come from settings."""
        settings = Settings(installations=[NantInstallation("0.92", "/opt/nant")])
        service = BuildService(settings, context=make_context())

        assert service.registry.resolve("0.92") is not None

    def test_list_installations_reports_existence(self):
        """Test listing includes whether the executable exists."""
        settings = Settings(installations=[NantInstallation("0.92", "/opt/nant")])
        service = BuildService(settings, context=make_context(exists=False))

        listed = service.list_installations()

        assert listed == [{"name": "0.92", "home": "/opt/nant", "exists": False}]

    def test_configure_replaces_all(self):
        """Test configuring replaces every installation."""
        settings = Settings(installations=[NantInstallation("old", "/opt/old")])
        service = BuildService(settings, context=make_context())

        installations = service.configure_installations(["a", "", "c"], ["/a", "/b", "/c"])

        assert [i.name for i in installations] == ["a", "c"]
        assert service.registry.resolve("old") is None
        assert service.registry.resolve("c") == NantInstallation("c", "/c")

    def test_check_home(self, nant_home, tmp_path):
        """Test home validation."""
        service = BuildService(context=make_context())

        assert service.check_home(str(nant_home)).ok is True
        assert service.check_home(str(tmp_path / "nope")).ok is False


class TestBuildServiceWorkspace:
    """Tests for working directory resolution."""

    def test_defaults_to_workspace(self):
        """Test no cwd means the workspace."""
        service = BuildService(Settings(workspace="/src"), context=make_context())
        assert service.resolve_workspace(None) == "/src"

    def test_relative_cwd_joined(self):
        """Test a relative cwd is taken relative to the workspace."""
        service = BuildService(Settings(workspace="/src"), context=make_context())
        assert service.resolve_workspace("app") == os.path.join("/src", "app")

    def test_absolute_cwd_kept(self, tmp_path):
        """Test an absolute cwd is used as is."""
        service = BuildService(Settings(workspace="/src"), context=make_context())
        assert service.resolve_workspace(str(tmp_path)) == str(tmp_path)

    def test_no_workspace(self):
        """Test without a workspace the cwd is passed through."""
        service = BuildService(context=make_context())
        assert service.resolve_workspace(None) is None
        assert service.resolve_workspace("app") == "app"


class TestBuildServiceRun:
    """Tests for running builds."""

    @pytest.mark.asyncio
    async def test_run_success(self):
        """Test a successful build is recorded."""
        context = make_context(output="BUILD SUCCEEDED\n")
        service = BuildService(Settings(workspace="/src"), context=context)

        result = await service.run(BuildInvocation(targets="compile"), env={"A": "1"})

        assert result.success is True
        assert service.last_result is result
        assert service.state == BuildState.SUCCEEDED
        assert "BUILD SUCCEEDED" in service.output
        _, env, cwd, _ = context.run.call_args.args
        assert env == {"A": "1"}
        assert cwd == "/src"

    @pytest.mark.asyncio
    async def test_run_failure_parses_diagnostics(self, sample_nant_output):
        """Test failed build output is parsed into diagnostics."""
        service = BuildService(context=make_context(exit_code=1, output=sample_nant_output))

        result = await service.run(BuildInvocation("default.build", "compile"))

        assert result.success is False
        assert service.state == BuildState.FAILED
        assert result.error_count == 1
        assert result.warning_count == 1
        assert result.errors[0].file == "c:\\src\\app\\Program.cs"
        assert result.errors[0].line == 12

    @pytest.mark.asyncio
    async def test_run_uses_snapshot_of_registry(self):
        """Test the configured installation is used."""
        settings = Settings(installations=[NantInstallation("0.92", "/opt/nant")])
        context = make_context()
        service = BuildService(settings, context=context)

        result = await service.run(BuildInvocation(installation_name="0.92"))

        assert result.command[0] in ("/opt/nant/bin/nant", "cmd.exe")

    @pytest.mark.asyncio
    async def test_extra_sink_receives_output(self):
        """Test an extra sink sees every line."""
        lines: list[str] = []
        service = BuildService(context=make_context(output="a\nb\n"))

        await service.run(BuildInvocation(), sink=lines.append)

        assert lines[-2:] == ["a\n", "b\n"]

    @pytest.mark.asyncio
    async def test_output_cleared_between_builds(self):
        """Test output only holds the most recent build."""
        service = BuildService(context=make_context(output="first\n"))
        await service.run(BuildInvocation())

        service._context = make_context(output="second\n")
        await service.run(BuildInvocation())

        assert "first" not in service.output
        assert "second" in service.output

    @pytest.mark.asyncio
    async def test_state_listeners(self):
        """Test service listeners see builder state changes."""
        states: list[BuildState] = []
        service = BuildService(context=make_context(exit_code=1))
        service.on_state_change(states.append)

        await service.run(BuildInvocation())

        assert states == [BuildState.BUILDING, BuildState.FAILED]

    @pytest.mark.asyncio
    async def test_concurrent_runs_are_serialized(self):
        """Test overlapping builds run one at a time with separate output."""
        running = 0
        overlap = False

        async def run(args, env, cwd, sink):
            nonlocal running, overlap
            running += 1
            overlap = overlap or running > 1
            tag = "jobA" if "jobA" in " ".join(args) else "jobB"
            for i in range(3):
                sink(f"{tag}-{i}\n")
                await asyncio.sleep(0)
            running -= 1
            return 0

        context = make_context()
        context.run = AsyncMock(side_effect=run)
        service = BuildService(context=context)

        first, second = await asyncio.gather(
            service.run(BuildInvocation(targets="jobA")),
            service.run(BuildInvocation(targets="jobB")),
        )

        assert overlap is False
        assert first.output.endswith("jobA-0\njobA-1\njobA-2\n")
        assert "jobB" not in first.output
        assert service.last_result is second
        assert service.output.endswith("jobB-0\njobB-1\njobB-2\n")
        assert "jobA" not in service.output
