"""
SQLite persistence for projects and session records.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

from nwha.errors import ProjectExists, SessionNotFound
from nwha.models.session import Project, Session, SessionStatus
from nwha.utils.helpers import slugify


class SessionRepository(ABC):
    """
    Storage interface the session controller depends on.

    The controller is the only writer of status, iteration and timestamp
    fields; everything else reads.
    """

    @abstractmethod
    def create_session(self, project_id: int, engine: str, max_iterations: int) -> Session:
        """Insert a pending session with zero iterations and return it."""

    @abstractmethod
    def get_session(self, session_id: int) -> Session | None:
        """Fetch a session by id."""

    @abstractmethod
    def update_session_status(
        self,
        session_id: int,
        status: SessionStatus,
        pid: int | None,
        started_at: datetime | None = None,
        ended_at: datetime | None = None,
    ) -> Session:
        """Write status and pid; timestamps are written only when given."""

    @abstractmethod
    def increment_iteration(self, session_id: int, engine: str | None = None) -> Session:
        """Count one completed iteration, recording the engine that produced it."""

    @abstractmethod
    def find_project(self, slug: str, owner_id: int) -> Project | None:
        """Find a project by slug for its owner."""


class SessionStorage(SessionRepository):
    """
    SQLite-based storage for projects and session history.

    Session rows are never deleted; a stopped session stays as history.

    Example:
        >>> storage = SessionStorage("./data")
        >>> project = storage.create_project(owner_id=1, name="My App")
        >>> session = storage.create_session(project.id, "claude", max_iterations=20)
    """

    def __init__(self, data_dir: str | Path, filename: str = "nwha.db"):
        """
        Initialize the storage.

        Args:
            data_dir: Directory for the database file
            filename: Database file name
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.db_path = self.data_dir / filename
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    owner_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    slug TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (owner_id, slug)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id INTEGER NOT NULL,
                    engine TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    pid INTEGER,
                    iterations INTEGER NOT NULL DEFAULT 0,
                    max_iterations INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    started_at TEXT,
                    ended_at TEXT,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (project_id) REFERENCES projects(id)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_status
                ON sessions(status)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_project
                ON sessions(project_id)
            """)
            conn.commit()

    # Projects

    def create_project(self, owner_id: int, name: str) -> Project:
        """
        Create a project for an owner.

        Raises:
            ValueError: If the name has no usable characters
            ProjectExists: If the owner already has a project with this slug
        """
        slug = slugify(name)
        if not slug:
            raise ValueError(f"Project name has no usable characters: {name!r}")

        now = datetime.now().isoformat()
        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO projects (owner_id, name, slug, created_at) VALUES (?, ?, ?, ?)",
                    (owner_id, name, slug, now),
                )
            except sqlite3.IntegrityError as e:
                raise ProjectExists(slug) from e
            conn.commit()
            project_id = cursor.lastrowid

        return Project(id=project_id, owner_id=owner_id, name=name, slug=slug, created_at=now)

    def find_project(self, slug: str, owner_id: int) -> Project | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE slug = ? AND owner_id = ?",
                (slug, owner_id),
            ).fetchone()
        return Project(**dict(row)) if row else None

    def get_project(self, project_id: int) -> Project | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        return Project(**dict(row)) if row else None

    def list_projects(self, owner_id: int | None = None) -> list[Project]:
        """List projects, newest first."""
        with self._connect() as conn:
            if owner_id is None:
                rows = conn.execute(
                    "SELECT * FROM projects ORDER BY created_at DESC, id DESC"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM projects WHERE owner_id = ? ORDER BY created_at DESC, id DESC",
                    (owner_id,),
                ).fetchall()
        return [Project(**dict(row)) for row in rows]

    # Sessions

    def create_session(self, project_id: int, engine: str, max_iterations: int) -> Session:
        if max_iterations < 1:
            raise ValueError("max_iterations must be a positive integer")

        now = datetime.now().isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO sessions
                (project_id, engine, status, iterations, max_iterations, created_at, updated_at)
                VALUES (?, ?, ?, 0, ?, ?, ?)
            """,
                (project_id, engine, SessionStatus.PENDING.value, max_iterations, now, now),
            )
            conn.commit()
            session_id = cursor.lastrowid

        return self._require(session_id)

    def get_session(self, session_id: int) -> Session | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return self._row_to_session(row) if row else None

    def update_session_status(
        self,
        session_id: int,
        status: SessionStatus,
        pid: int | None,
        started_at: datetime | None = None,
        ended_at: datetime | None = None,
    ) -> Session:
        now = datetime.now().isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE sessions
                SET status = ?, pid = ?,
                    started_at = COALESCE(?, started_at),
                    ended_at = COALESCE(?, ended_at),
                    updated_at = ?
                WHERE id = ?
            """,
                (
                    status.value,
                    pid,
                    started_at.isoformat() if started_at else None,
                    ended_at.isoformat() if ended_at else None,
                    now,
                    session_id,
                ),
            )
            conn.commit()
            if cursor.rowcount == 0:
                raise SessionNotFound(session_id)

        return self._require(session_id)

    def increment_iteration(self, session_id: int, engine: str | None = None) -> Session:
        now = datetime.now().isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE sessions
                SET iterations = iterations + 1,
                    engine = COALESCE(?, engine),
                    updated_at = ?
                WHERE id = ? AND iterations < max_iterations
            """,
                (engine, now, session_id),
            )
            conn.commit()
            updated = cursor.rowcount

        session = self._require(session_id)
        if not updated:
            raise ValueError(f"Session {session_id} has no iterations left")
        return session

    def list_sessions(
        self,
        project_id: int | None = None,
        status: SessionStatus | str | None = None,
        limit: int = 20,
    ) -> list[Session]:
        """
        List sessions, newest first.

        Args:
            project_id: Filter by project (optional)
            status: Filter by status (optional)
            limit: Maximum number of sessions to return
        """
        clauses = []
        params: list[Any] = []
        if project_id is not None:
            clauses.append("project_id = ?")
            params.append(project_id)
        if status is not None:
            clauses.append("status = ?")
            params.append(SessionStatus(status).value)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM sessions {where} ORDER BY id DESC LIMIT ?",
                params,
            ).fetchall()
        return [self._row_to_session(row) for row in rows]

    def _require(self, session_id: int) -> Session:
        session = self.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> Session:
        data = dict(row)
        data.pop("updated_at", None)
        return Session.model_validate(data)
