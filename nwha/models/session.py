"""
Session, project and state-machine models.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from nwha.models.engine import InvocationOutcome


TERMINAL_KEY_PREFIX = "session-"


class SessionStatus(str, Enum):
    """Lifecycle states of an agent session."""

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"

    @property
    def is_live(self) -> bool:
        """Whether a session in this state owns a terminal process."""
        return self in (SessionStatus.RUNNING, SessionStatus.PAUSED)

    @property
    def is_terminal(self) -> bool:
        return self == SessionStatus.STOPPED


# Allowed transitions. Self-loops are tolerated no-ops.
TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({SessionStatus.RUNNING, SessionStatus.STOPPED}),
    SessionStatus.RUNNING: frozenset(
        {SessionStatus.RUNNING, SessionStatus.PAUSED, SessionStatus.STOPPED}
    ),
    SessionStatus.PAUSED: frozenset(
        {SessionStatus.PAUSED, SessionStatus.RUNNING, SessionStatus.STOPPED}
    ),
    SessionStatus.STOPPED: frozenset(),
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    """Check a transition against the transition table."""
    return target in TRANSITIONS[current]


def terminal_key(session_id: int) -> str:
    """Registry key of the terminal bound to a session."""
    return f"{TERMINAL_KEY_PREFIX}{session_id}"


def parse_terminal_key(key: str) -> int | None:
    """Inverse of terminal_key; None for keys that do not name a session."""
    if not key.startswith(TERMINAL_KEY_PREFIX):
        return None
    try:
        return int(key[len(TERMINAL_KEY_PREFIX):])
    except ValueError:
        return None


class Project(BaseModel):
    """A project owned by a user; sessions run in its working directory."""

    id: int
    owner_id: int = Field(description="Identifier of the owning principal")
    name: str
    slug: str = Field(description="URL-safe name, unique per owner")
    created_at: datetime = Field(default_factory=datetime.now)


class Session(BaseModel):
    """
    One bounded agent run against a project.

    This is the descriptor handed to transports. It is written only by the
    session controller through the repository; invariants:
    - iterations never exceed max_iterations
    - pid is set exactly while the session is running or paused
    - ended_at is set exactly when the session is stopped
    """

    id: int
    project_id: int
    engine: str = Field(description="Engine selected at creation or last used")
    status: SessionStatus = Field(default=SessionStatus.PENDING)
    pid: int | None = Field(default=None, description="Terminal process id")

    iterations: int = Field(default=0, ge=0)
    max_iterations: int = Field(gt=0)

    created_at: datetime = Field(default_factory=datetime.now)
    started_at: datetime | None = Field(default=None)
    ended_at: datetime | None = Field(default=None)

    @model_validator(mode="after")
    def _check_iterations(self) -> "Session":
        if self.iterations > self.max_iterations:
            raise ValueError(
                f"iterations ({self.iterations}) exceed max_iterations ({self.max_iterations})"
            )
        return self

    @property
    def terminal_key(self) -> str:
        return terminal_key(self.id)

    @property
    def remaining_iterations(self) -> int:
        return self.max_iterations - self.iterations

    @property
    def duration_seconds(self) -> float | None:
        """Elapsed run time, up to now for live sessions."""
        if self.started_at is None:
            return None
        end = self.ended_at or datetime.now()
        return (end - self.started_at).total_seconds()


class IterationResult(BaseModel):
    """Outcome of one gated iteration request."""

    session: Session
    outcome: InvocationOutcome | None = Field(
        default=None,
        description="Engine response, if one was obtained"
    )
    applied: bool = Field(
        default=False,
        description="Whether the response was counted and sent to the terminal"
    )

    @property
    def permitted(self) -> bool:
        """Whether the iteration gate let the engine run."""
        return self.outcome is not None


class SessionTransitioned(BaseModel):
    """Published by the controller after every persisted status change."""

    session_id: int
    previous: SessionStatus
    current: SessionStatus
    cause: str = Field(default="", description="What triggered the change")
    timestamp: datetime = Field(default_factory=datetime.now)
