"""
Engine invocation models.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class EngineRole(str, Enum):
    """Position of an engine in the fallback chain."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class InvocationOutcome(BaseModel):
    """Successful response from the fallback coordinator."""

    text: str = Field(description="Trimmed standard output of the engine")
    engine: str = Field(description="Name of the engine that produced the text")
    role: EngineRole = Field(description="Whether the primary or secondary engine answered")
    duration: float = Field(default=0.0, description="Seconds spent across all attempts")
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def used_fallback(self) -> bool:
        return self.role == EngineRole.SECONDARY

    def get_summary(self) -> str:
        """Get a brief summary of the outcome."""
        return f"[{self.role.value}] {self.engine} ({self.duration:.1f}s, {len(self.text)} chars)"
