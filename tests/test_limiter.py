"""
Tests for the iteration budget policy.
"""

import pytest

from nwha.core.limiter import IterationLimiter
from nwha.models.session import Session, SessionStatus


def make_session(status, iterations=0, max_iterations=3):
    return Session(
        id=1,
        project_id=1,
        engine="claude",
        status=status,
        iterations=iterations,
        max_iterations=max_iterations,
    )


class TestIterationLimiter:
    """Tests for IterationLimiter."""

    def test_allows_running_with_budget(self):
        assert IterationLimiter().allow(make_session(SessionStatus.RUNNING, iterations=2))

    def test_refuses_when_budget_used(self):
        session = make_session(SessionStatus.RUNNING, iterations=3)
        limiter = IterationLimiter()

        assert not limiter.allow(session)
        assert limiter.exhausted(session)

    @pytest.mark.parametrize(
        "status", [SessionStatus.PENDING, SessionStatus.PAUSED, SessionStatus.STOPPED]
    )
    def test_refuses_other_states(self, status):
        assert not IterationLimiter().allow(make_session(status))

    def test_is_pure(self):
        limiter = IterationLimiter()
        session = make_session(SessionStatus.RUNNING, iterations=1)

        assert limiter.allow(session) == limiter.allow(session)
        assert session.iterations == 1
