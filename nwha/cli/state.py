"""
Shared CLI state.

Global options are parsed once by the app callback and read by every
command through ``load_config``.
"""

from __future__ import annotations

from nwha.models.config import NwhaConfig
from nwha.utils.logger import setup_logging


class CLIState:
    """Global CLI state for options like quiet, debug and config path."""

    quiet: bool = False
    debug: bool = False
    config_path: str | None = None


cli_state = CLIState()


def load_config() -> NwhaConfig:
    """Load configuration for a command and set up logging from it."""
    config = NwhaConfig.load(cli_state.config_path)

    setup_logging(
        level="debug" if cli_state.debug else config.logging.level,
        log_file=config.logging.file,
        json_format=config.logging.json_format,
        console=not cli_state.quiet,
    )
    return config
