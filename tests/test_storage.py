"""
Tests for SQLite project and session storage.
"""

from datetime import datetime

import pytest

from nwha.core.storage import SessionRepository, SessionStorage
from nwha.errors import ProjectExists, SessionNotFound
from nwha.models.session import SessionStatus


class TestProjects:
    """Tests for project records."""

    def test_init_creates_db(self, temp_dir):
        """Test that initialization creates the database."""
        storage = SessionStorage(temp_dir)
        assert storage.db_path.exists()
        assert isinstance(storage, SessionRepository)

    def test_create_project_slugifies_name(self, storage):
        project = storage.create_project(owner_id=1, name="My Cool App!")
        assert project.slug == "my-cool-app"
        assert project.name == "My Cool App!"
        assert project.id is not None

    def test_duplicate_slug_rejected(self, storage, project):
        with pytest.raises(ProjectExists):
            storage.create_project(owner_id=1, name="my app")

    def test_same_slug_for_different_owners(self, storage, project):
        other = storage.create_project(owner_id=2, name="My App")
        assert other.slug == project.slug
        assert other.id != project.id

    def test_unusable_name_rejected(self, storage):
        with pytest.raises(ValueError):
            storage.create_project(owner_id=1, name="!!!")

    def test_find_project_is_owner_scoped(self, storage, project):
        assert storage.find_project("my-app", 1).id == project.id
        assert storage.find_project("my-app", 2) is None
        assert storage.find_project("other", 1) is None

    def test_list_projects(self, storage, project):
        storage.create_project(owner_id=2, name="Elsewhere")

        assert len(storage.list_projects()) == 2
        assert [p.slug for p in storage.list_projects(owner_id=1)] == ["my-app"]


class TestSessions:
    """Tests for session records."""

    def test_create_session_is_pending(self, storage, project):
        session = storage.create_session(project.id, "claude", max_iterations=5)

        assert session.status == SessionStatus.PENDING
        assert session.iterations == 0
        assert session.max_iterations == 5
        assert session.pid is None
        assert session.started_at is None

    def test_create_session_rejects_zero_budget(self, storage, project):
        with pytest.raises(ValueError):
            storage.create_session(project.id, "claude", max_iterations=0)

    def test_get_missing_session(self, storage):
        assert storage.get_session(999) is None

    def test_update_status_keeps_timestamps(self, storage, project):
        session = storage.create_session(project.id, "claude", max_iterations=5)
        started = datetime(2026, 1, 1, 12, 0, 0)

        running = storage.update_session_status(session.id, SessionStatus.RUNNING, 4242, started_at=started)
        paused = storage.update_session_status(session.id, SessionStatus.PAUSED, 4242)

        assert running.pid == 4242
        assert paused.status == SessionStatus.PAUSED
        assert paused.started_at == started
        assert paused.ended_at is None

    def test_update_missing_session(self, storage):
        with pytest.raises(SessionNotFound):
            storage.update_session_status(999, SessionStatus.STOPPED, None)

    def test_increment_iteration_records_engine(self, storage, project):
        session = storage.create_session(project.id, "claude", max_iterations=2)

        session = storage.increment_iteration(session.id, engine="codex")

        assert session.iterations == 1
        assert session.engine == "codex"

    def test_increment_never_exceeds_budget(self, storage, project):
        session = storage.create_session(project.id, "claude", max_iterations=1)
        storage.increment_iteration(session.id)

        with pytest.raises(ValueError):
            storage.increment_iteration(session.id)
        assert storage.get_session(session.id).iterations == 1

    def test_increment_missing_session(self, storage):
        with pytest.raises(SessionNotFound):
            storage.increment_iteration(999)

    def test_list_sessions_filters(self, storage, project):
        first = storage.create_session(project.id, "claude", max_iterations=5)
        second = storage.create_session(project.id, "claude", max_iterations=5)
        storage.update_session_status(first.id, SessionStatus.STOPPED, None, ended_at=datetime.now())

        other = storage.create_project(owner_id=1, name="Other")
        storage.create_session(other.id, "codex", max_iterations=5)

        assert [s.id for s in storage.list_sessions(project_id=project.id)] == [second.id, first.id]
        assert [s.id for s in storage.list_sessions(status="stopped")] == [first.id]
        assert len(storage.list_sessions(limit=2)) == 2

    def test_sessions_persist_across_instances(self, temp_dir, storage, project):
        session = storage.create_session(project.id, "claude", max_iterations=5)

        reopened = SessionStorage(storage.data_dir)
        assert reopened.get_session(session.id).max_iterations == 5
