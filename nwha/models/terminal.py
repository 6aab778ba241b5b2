"""
Terminal process models and events.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field


class TerminalOptions(BaseModel):
    """Options for spawning a session terminal."""

    command: list[str] = Field(default_factory=lambda: ["bash"], min_length=1)
    cwd: Path | None = Field(default=None, description="Working directory (None = current)")
    cols: int = Field(default=80, ge=1)
    rows: int = Field(default=24, ge=1)
    term: str = Field(default="xterm-256color")
    env: dict[str, str] | None = Field(
        default=None,
        description="Extra environment variables on top of the host environment"
    )


class TerminalInfo(BaseModel):
    """Snapshot of a live terminal."""

    session_id: str = Field(description="Registry key the terminal is bound to")
    pid: int
    cols: int
    rows: int
    created_at: datetime


class TerminalExited(BaseModel):
    """Published by the registry whenever a terminal process ends."""

    session_id: str
    pid: int
    exit_code: int | None = Field(default=None, description="None if it could not be reaped")
    requested: bool = Field(
        default=False,
        description="True when the exit followed an explicit destroy"
    )
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def reason(self) -> str:
        if self.requested:
            return "destroyed"
        return f"exited with code {self.exit_code}"
