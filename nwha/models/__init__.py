"""NWHA models package."""

from nwha.models.config import (
    NwhaConfig,
    EngineConfig,
    EnginesConfig,
    SessionConfig,
    TerminalConfig,
    StorageConfig,
    LoggingConfig,
)
from nwha.models.engine import EngineRole, InvocationOutcome
from nwha.models.session import (
    IterationResult,
    Project,
    Session,
    SessionStatus,
    SessionTransitioned,
)
from nwha.models.terminal import TerminalExited, TerminalInfo, TerminalOptions

__all__ = [
    # Config
    "NwhaConfig",
    "EngineConfig",
    "EnginesConfig",
    "SessionConfig",
    "TerminalConfig",
    "StorageConfig",
    "LoggingConfig",
    # Engines
    "EngineRole",
    "InvocationOutcome",
    # Sessions
    "IterationResult",
    "Project",
    "Session",
    "SessionStatus",
    "SessionTransitioned",
    # Terminals
    "TerminalExited",
    "TerminalInfo",
    "TerminalOptions",
]
