"""
Tests for CLI commands.
"""

from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from nwha.cli.app import app


runner = CliRunner()


@pytest.fixture
def config_file(temp_dir, monkeypatch):
    """Config file rooted in a temporary directory with POSIX stand-in engines."""
    monkeypatch.chdir(temp_dir)
    path = Path(temp_dir) / "nwha.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "engines": {
                    "primary": {"name": "claude", "command": ["false"]},
                    "secondary": {"name": "codex", "command": ["printf", "%s"]},
                },
                "sessions": {"projects_root_directory": str(Path(temp_dir) / "projects")},
                "storage": {"data_dir": str(Path(temp_dir) / "data")},
                "terminal": {"shell": ["cat"], "destroy_grace_seconds": 0.5},
            }
        )
    )
    return str(path)


def invoke(config_file, *args):
    return runner.invoke(app, ["--quiet", "--config", config_file, *args])


class TestGlobalFlags:
    """Tests for global CLI flags."""

    def test_version_flag(self):
        """Test --version flag shows version."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "NWHA" in result.stdout

    def test_help_flag(self):
        """Test --help flag shows help."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Autonomous coding agent sessions" in result.stdout

    def test_global_flags_exist(self):
        """Test --quiet, --debug and --config are recognized."""
        result = runner.invoke(app, ["--help"])
        assert "--quiet" in result.stdout
        assert "--debug" in result.stdout
        assert "--config" in result.stdout


class TestProjectCommands:
    """Tests for project subcommands."""

    def test_create_and_list(self, config_file, temp_dir):
        result = invoke(config_file, "project", "create", "My App")
        assert result.exit_code == 0
        assert "my-app" in result.stdout
        assert (Path(temp_dir) / "projects" / "my-app").is_dir()

        result = invoke(config_file, "project", "list")
        assert result.exit_code == 0
        assert "my-app" in result.stdout

    def test_duplicate_project(self, config_file):
        invoke(config_file, "project", "create", "My App")
        result = invoke(config_file, "project", "create", "my app")
        assert result.exit_code == 1
        assert "already exists" in result.stdout

    def test_list_empty(self, config_file):
        result = invoke(config_file, "project", "list")
        assert result.exit_code == 0
        assert "No projects found" in result.stdout


class TestSessionCommands:
    """Tests for session subcommands."""

    def test_list_empty(self, config_file):
        result = invoke(config_file, "session", "list")
        assert result.exit_code == 0
        assert "No sessions found" in result.stdout

    def test_list_rejects_unknown_status(self, config_file):
        result = invoke(config_file, "session", "list", "--status", "sleeping")
        assert result.exit_code == 1

    def test_show_missing(self, config_file):
        result = invoke(config_file, "session", "show", "42")
        assert result.exit_code == 1
        assert "not found" in result.stdout


class TestRunAndAsk:
    """Tests for the top-level run and ask commands."""

    def test_ask_falls_back(self, config_file):
        result = invoke(config_file, "ask", "hello there")
        assert result.exit_code == 0
        assert "hello there" in result.stdout

    def test_run_unknown_project(self, config_file):
        result = invoke(config_file, "run", "ghost", "--prompt", "go")
        assert result.exit_code == 1
        assert "Project not found" in result.stdout

    def test_run_until_budget(self, config_file):
        invoke(config_file, "project", "create", "My App")

        result = invoke(config_file, "run", "my-app", "--prompt", "true", "-n", "2")
        assert result.exit_code == 0
        assert "stopped after 2 iteration(s)" in result.stdout

        result = invoke(config_file, "session", "list", "--status", "stopped")
        assert result.exit_code == 0
        assert "2/2" in result.stdout

        result = invoke(config_file, "session", "show", "1")
        assert result.exit_code == 0
        assert "codex" in result.stdout


class TestConfigCommands:
    """Tests for config subcommands."""

    def test_config_help(self):
        """Test config help shows subcommands."""
        result = runner.invoke(app, ["config", "--help"])
        assert result.exit_code == 0
        assert "show" in result.stdout
        assert "init" in result.stdout

    def test_config_show(self, config_file):
        result = invoke(config_file, "config", "show")
        assert result.exit_code == 0
        assert "NWHA Configuration" in result.stdout
        assert "printf %s" in result.stdout

    def test_config_init(self, temp_dir, monkeypatch):
        monkeypatch.chdir(temp_dir)
        result = runner.invoke(app, ["config", "init", "--output", "fresh.yaml", "--force"])
        assert result.exit_code == 0

        data = yaml.safe_load((Path(temp_dir) / "fresh.yaml").read_text())
        assert data["engines"]["primary"]["name"] == "claude"
        assert data["sessions"]["max_iterations_default"] == 20
