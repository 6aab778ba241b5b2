"""
Iteration budget policy.
"""

from __future__ import annotations

from nwha.models.session import Session, SessionStatus


class IterationLimiter:
    """
    Decides whether a session may run another iteration.

    Pure function of the session record: the ceiling is the session's own
    ``max_iterations``, fixed when the session was created.
    """

    def allow(self, session: Session) -> bool:
        """True iff the session is running and has budget left."""
        return (
            session.status == SessionStatus.RUNNING
            and session.iterations < session.max_iterations
        )

    def exhausted(self, session: Session) -> bool:
        """True once the session has used its whole budget."""
        return session.iterations >= session.max_iterations
