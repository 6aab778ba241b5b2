"""CLI commands package."""

from nwha.cli.commands import config, project, session

__all__ = ["config", "project", "session"]
