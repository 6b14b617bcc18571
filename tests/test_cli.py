"""Tests for CLI entry point - argument parsing and workspace detection."""

import pytest

from nant_mcp.__main__ import find_workspace_root, parse_args


class TestFindWorkspaceRoot:
    """Tests for find_workspace_root function."""

    def test_finds_build_file(self, tmp_path, monkeypatch):
        """Test that a *.build file marks the workspace."""
        (tmp_path / "default.build").touch()
        subdir = tmp_path / "src" / "App"
        subdir.mkdir(parents=True)

        monkeypatch.chdir(subdir)

        assert find_workspace_root() == str(tmp_path)

    def test_finds_git_when_no_build_file(self, tmp_path, monkeypatch):
        """Test that .git is found as fallback."""
        (tmp_path / ".git").mkdir()
        subdir = tmp_path / "src"
        subdir.mkdir()

        monkeypatch.chdir(subdir)

        assert find_workspace_root() == str(tmp_path)

    def test_prefers_build_file_over_git(self, tmp_path, monkeypatch):
        """Test that a *.build file is preferred over .git."""
        (tmp_path / ".git").mkdir()
        project_dir = tmp_path / "app"
        project_dir.mkdir()
        (project_dir / "app.build").touch()

        monkeypatch.chdir(project_dir)

        assert find_workspace_root() == str(project_dir)

    def test_falls_back_to_cwd(self, tmp_path, monkeypatch):
        """Test fallback to CWD when no markers found."""
        monkeypatch.chdir(tmp_path)

        assert find_workspace_root() == str(tmp_path)

    def test_respects_boundary(self, tmp_path, monkeypatch):
        """Test that boundary parameter constrains search."""
        (tmp_path / "default.build").touch()
        boundary = tmp_path / "restricted"
        subdir = boundary / "project"
        subdir.mkdir(parents=True)

        monkeypatch.chdir(subdir)

        assert find_workspace_root(root=str(boundary)) == str(subdir)

    def test_boundary_equal_to_cwd(self, tmp_path, monkeypatch):
        """Test the search stops immediately when CWD is the boundary."""
        (tmp_path / "default.build").touch()
        boundary = tmp_path / "restricted"
        boundary.mkdir()

        monkeypatch.chdir(boundary)

        assert find_workspace_root(root=str(boundary)) == str(boundary)


class TestParseArgs:
    """Tests for command line parsing."""

    def test_defaults(self):
        """Test defaults with no arguments."""
        args = parse_args([])
        assert args.workspace is None
        assert args.workspace_from_cwd is False
        assert args.installation == []

    def test_repeated_installation(self):
        """Test --installation can be repeated."""
        args = parse_args(["--installation", "a=/a", "--installation", "b=/b"])
        assert args.installation == ["a=/a", "b=/b"]

    def test_workspace(self):
        """Test --workspace."""
        assert parse_args(["--workspace", "/src"]).workspace == "/src"
