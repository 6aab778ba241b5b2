"""
Error types raised by the NWHA core.

Caller errors (unknown project/session, rejected transitions) map to
4xx-style outcomes in a transport. Invocation errors are recoverable and
eligible for fallback; coordinator errors end one iteration but never the
session.
"""

from __future__ import annotations

from nwha.models.session import SessionStatus
from nwha.utils.helpers import format_bytes


class NwhaError(Exception):
    """Base class for all NWHA errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Caller errors


class ProjectNotFound(NwhaError):
    """Raised when a project lookup misses for the calling owner."""

    def __init__(self, slug: str, owner_id: int | None = None):
        super().__init__(f"Project not found: {slug}")
        self.slug = slug
        self.owner_id = owner_id


class ProjectExists(NwhaError):
    """Raised when an owner already has a project with the same slug."""

    def __init__(self, slug: str):
        super().__init__(f"Project with this name already exists: {slug}")
        self.slug = slug


class SessionNotFound(NwhaError):
    """Raised by control operations that name an unknown session."""

    def __init__(self, session_id: int):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidTransition(NwhaError):
    """Raised when the transition table rejects a requested status change."""

    def __init__(self, session_id: int, current: SessionStatus, target: SessionStatus):
        super().__init__(
            f"Session {session_id} cannot go from {current.value} to {target.value}"
        )
        self.session_id = session_id
        self.current = current
        self.target = target


# Terminal errors


class TerminalSpawnError(NwhaError):
    """Raised when the interactive process for a session cannot be started."""

    def __init__(self, session_id: str, reason: str):
        super().__init__(f"Could not start terminal for {session_id}: {reason}")
        self.session_id = session_id
        self.reason = reason


# Invocation errors


class InvocationError(NwhaError):
    """A single engine call failed."""

    def __init__(self, engine: str, message: str):
        super().__init__(message)
        self.engine = engine


class CommandFailed(InvocationError):
    """The engine could not be started or exited non-zero."""

    def __init__(self, engine: str, diagnostic: str, exit_code: int | None = None):
        super().__init__(engine, diagnostic)
        self.diagnostic = diagnostic
        self.exit_code = exit_code


class CommandTimeout(InvocationError):
    """The engine did not finish within its wall-clock limit."""

    def __init__(self, engine: str, timeout: float):
        super().__init__(engine, f"{engine} timed out after {timeout:g} seconds")
        self.timeout = timeout


class OutputTooLarge(InvocationError):
    """The engine produced more output than the capture limit."""

    def __init__(self, engine: str, limit: int):
        super().__init__(engine, f"{engine} output exceeded {format_bytes(limit)}")
        self.limit = limit


# Coordinator errors


class EngineUnavailable(NwhaError):
    """No engine produced a response for an iteration."""


class PrimaryFailed(EngineUnavailable):
    """The primary engine failed and fallback is disabled."""

    def __init__(self, error: InvocationError):
        super().__init__(f"{error.engine} CLI failed: {error.message}")
        self.error = error


class BothFailed(EngineUnavailable):
    """Primary and secondary engines both failed."""

    def __init__(self, primary_error: InvocationError, secondary_error: InvocationError):
        super().__init__(
            f"Both {primary_error.engine} and {secondary_error.engine} failed. "
            f"{primary_error.engine}: {primary_error.message}, "
            f"{secondary_error.engine}: {secondary_error.message}"
        )
        self.primary_error = primary_error
        self.secondary_error = secondary_error
