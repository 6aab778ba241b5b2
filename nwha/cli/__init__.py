"""
CLI package for NWHA.

Provides a rich command-line interface using Typer.
"""

from nwha.cli.app import app, main

__all__ = ["app", "main"]
