"""
Session lifecycle controller for NWHA.

The controller is the state machine behind every agent session: it creates
session records, binds them to a terminal in the process registry, gates
iterations against the session budget and serializes pause/resume/stop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol

from nwha.core.events import EventBus
from nwha.core.limiter import IterationLimiter
from nwha.core.locks import KeyedLocks
from nwha.core.registry import ProcessRegistry
from nwha.core.storage import SessionRepository, SessionStorage
from nwha.engines.fallback import FallbackCoordinator
from nwha.errors import InvalidTransition, ProjectNotFound, SessionNotFound, TerminalSpawnError
from nwha.models.config import NwhaConfig
from nwha.models.engine import InvocationOutcome
from nwha.models.session import (
    IterationResult,
    Session,
    SessionStatus,
    SessionTransitioned,
    can_transition,
    parse_terminal_key,
    terminal_key,
)
from nwha.models.terminal import TerminalExited, TerminalInfo, TerminalOptions
from nwha.utils.logger import log_transition

logger = logging.getLogger(__name__)


class Responder(Protocol):
    """Source of engine responses (normally a FallbackCoordinator)."""

    async def respond(self, prompt: str, cwd: str | Path | None = None) -> InvocationOutcome:
        ...


class SessionController:
    """
    Creates, tracks and controls agent sessions.

    Every mutation of a session runs under that session's own lock, so
    control requests and terminal-exit notifications for one session are
    applied one at a time while different sessions never wait on each
    other. Engine calls run outside the lock.

    Session states: pending -> running -> (paused <-> running) -> stopped.

    Example:
        >>> controller = SessionController.from_config(NwhaConfig.load())
        >>> session = await controller.start_session("my-app", owner_id=1)
        >>> result = await controller.run_iteration(session.id, "Work on the next task")
        >>> await controller.stop_session(session.id)
    """

    def __init__(
        self,
        repository: SessionRepository,
        registry: ProcessRegistry,
        responder: Responder,
        config: NwhaConfig | None = None,
        limiter: IterationLimiter | None = None,
        events: EventBus | None = None,
    ):
        """
        Initialize the controller.

        Args:
            repository: Persistence for session and project records
            registry: Registry owning the session terminals
            responder: Engine coordinator used for iterations
            config: NWHA configuration (defaults when omitted)
            limiter: Iteration policy
            events: Bus to subscribe to terminal exits and publish
                transitions on; defaults to the registry's bus
        """
        self.repository = repository
        self.registry = registry
        self.responder = responder
        self.config = config or NwhaConfig()
        self.limiter = limiter or IterationLimiter()
        self.events = events or registry.events

        self._locks = KeyedLocks()
        self._workdirs: dict[int, Path] = {}
        self._expiry_tasks: dict[int, asyncio.Task] = {}

        self._unsubscribe = self.events.subscribe(TerminalExited, self._on_terminal_exited)

    @classmethod
    def from_config(cls, config: NwhaConfig) -> "SessionController":
        """Compose a controller with SQLite storage, a fresh registry and both engines."""
        events = EventBus()
        registry = ProcessRegistry(events, destroy_grace=config.terminal.destroy_grace_seconds)
        storage = SessionStorage(config.storage.get_data_dir())
        responder = FallbackCoordinator.from_config(config.engines)
        return cls(storage, registry, responder, config=config, events=events)

    def _require(self, session_id: int) -> Session:
        session = self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    # Control operations

    async def start_session(
        self,
        project_slug: str,
        owner_id: int,
        max_iterations: int | None = None,
    ) -> Session:
        """
        Start a session for a project owned by the caller.

        Args:
            project_slug: Project to work on
            owner_id: Authenticated caller
            max_iterations: Iteration ceiling (defaults to configuration)

        Returns:
            The running session

        Raises:
            ProjectNotFound: If the caller has no such project
            TerminalSpawnError: If the terminal cannot be started; the
                session record is left stopped
        """
        project = self.repository.find_project(project_slug, owner_id)
        if project is None:
            raise ProjectNotFound(project_slug, owner_id)

        session = self.repository.create_session(
            project_id=project.id,
            engine=self.config.engines.primary.name,
            max_iterations=(
                self.config.sessions.max_iterations_default
                if max_iterations is None
                else max_iterations
            ),
        )

        async with self._locks.hold(session.id):
            workdir = self.config.sessions.get_project_dir(project.slug)
            terminal = self.config.terminal
            options = TerminalOptions(
                command=terminal.shell,
                cwd=workdir,
                cols=terminal.cols,
                rows=terminal.rows,
                term=terminal.term,
                env={"NWHA_SESSION_ID": str(session.id), "NWHA_PROJECT": project.slug},
            )

            spawn_error = None
            try:
                handle = await self.registry.create(session.terminal_key, options)
            except TerminalSpawnError as e:
                spawn_error = e
                session, event = self._transition(
                    session, SessionStatus.STOPPED, pid=None,
                    ended_at=datetime.now(), cause="terminal failed to start",
                )
            else:
                self._workdirs[session.id] = workdir
                session, event = self._transition(
                    session, SessionStatus.RUNNING, pid=handle.pid,
                    started_at=datetime.now(), cause="start",
                )

        await self.events.publish(event)
        if spawn_error is not None:
            raise spawn_error
        return session

    async def pause_session(self, session_id: int) -> Session:
        """
        Withhold further iterations; the terminal stays alive.

        Raises:
            SessionNotFound: If the session does not exist
            InvalidTransition: If the session is not running
        """
        async with self._locks.hold(session_id):
            session = self._require(session_id)
            if session.status == SessionStatus.PAUSED:
                return session
            session, event = self._transition(
                session, SessionStatus.PAUSED, pid=session.pid, cause="pause"
            )
            self._schedule_expiry(session_id)

        await self.events.publish(event)
        return session

    async def resume_session(self, session_id: int) -> Session:
        """
        Let a paused session iterate again; no-op for running sessions.

        Raises:
            SessionNotFound: If the session does not exist
            InvalidTransition: If the session is stopped
        """
        async with self._locks.hold(session_id):
            session = self._require(session_id)
            if session.status == SessionStatus.RUNNING:
                return session
            session, event = self._transition(
                session, SessionStatus.RUNNING, pid=session.pid, cause="resume"
            )
            self._cancel_expiry(session_id)

        await self.events.publish(event)
        return session

    async def stop_session(self, session_id: int, cause: str = "stop") -> Session:
        """
        Stop a session and release its terminal; no-op if already stopped.

        Raises:
            SessionNotFound: If the session does not exist
        """
        async with self._locks.hold(session_id):
            session = self._require(session_id)
            if session.status == SessionStatus.STOPPED:
                return session
            session, event = await self._stop_locked(session, cause)

        await self.events.publish(event)
        return session

    async def _stop_locked(
        self, session: Session, cause: str
    ) -> tuple[Session, SessionTransitioned]:
        self._cancel_expiry(session.id)
        await self.registry.destroy(session.terminal_key)
        self._workdirs.pop(session.id, None)
        return self._transition(
            session, SessionStatus.STOPPED, pid=None, ended_at=datetime.now(), cause=cause
        )

    def _transition(
        self,
        session: Session,
        target: SessionStatus,
        pid: int | None,
        started_at: datetime | None = None,
        ended_at: datetime | None = None,
        cause: str = "",
    ) -> tuple[Session, SessionTransitioned]:
        """Persist a status change allowed by the transition table."""
        if not can_transition(session.status, target):
            raise InvalidTransition(session.id, session.status, target)

        updated = self.repository.update_session_status(
            session.id, target, pid, started_at=started_at, ended_at=ended_at
        )
        log_transition(logger, session.id, session.status.value, target.value, cause)

        return updated, SessionTransitioned(
            session_id=session.id,
            previous=session.status,
            current=target,
            cause=cause,
        )

    # Iterations

    async def run_iteration(self, session_id: int, prompt: str) -> IterationResult:
        """
        Run one gated agent iteration.

        The gate is checked under the session lock; a paused or stopped
        session runs nothing. The engine call happens outside the lock, and
        its response is counted and written to the terminal only if the
        session is still running with budget left when it arrives. The
        iteration that uses up the budget stops the session.

        Returns:
            IterationResult with the session after the iteration

        Raises:
            ValueError: If the prompt is empty
            SessionNotFound: If the session does not exist
            PrimaryFailed: If the primary engine failed and fallback is off
            BothFailed: If both engines failed (the session keeps running)
        """
        if not prompt or not prompt.strip():
            raise ValueError("prompt must not be empty")

        event = None
        async with self._locks.hold(session_id):
            session = self._require(session_id)

            if not self.limiter.allow(session):
                if session.status.is_live and self.limiter.exhausted(session):
                    session, event = await self._stop_locked(
                        session, cause="iteration limit reached"
                    )
            workdir = self._workdirs.get(session_id)

        if event is not None:
            await self.events.publish(event)
            return IterationResult(session=session)
        if not self.limiter.allow(session):
            return IterationResult(session=session)

        outcome = await self.responder.respond(prompt, cwd=workdir)

        async with self._locks.hold(session_id):
            session = self._require(session_id)
            if not self.limiter.allow(session):
                logger.info(
                    f"Discarding {outcome.engine} response for session {session_id} "
                    f"({session.status.value}, {session.iterations}/{session.max_iterations})"
                )
                return IterationResult(session=session, outcome=outcome, applied=False)

            session = self.repository.increment_iteration(session_id, engine=outcome.engine)
            self.registry.write(session.terminal_key, outcome.text + "\n")
            logger.info(
                f"Session [cyan]{session_id}[/] iteration "
                f"{session.iterations}/{session.max_iterations} via {outcome.engine}"
            )

            if self.limiter.exhausted(session):
                session, event = await self._stop_locked(
                    session, cause="iteration limit reached"
                )

        if event is not None:
            await self.events.publish(event)
        return IterationResult(session=session, outcome=outcome, applied=True)

    async def run_loop(
        self,
        session_id: int,
        prompt: str,
        on_result: Callable[[IterationResult], None] | None = None,
    ) -> Session:
        """
        Iterate until the session stops or is paused.

        Engine failures propagate to the caller, leaving the session running.

        Returns:
            The session as of the last iteration
        """
        while True:
            result = await self.run_iteration(session_id, prompt)
            if on_result:
                on_result(result)
            if result.session.status != SessionStatus.RUNNING:
                return result.session

    # Terminal pass-through

    def write_to_session(self, session_id: int, data: str | bytes) -> bool:
        """Send input to a session's terminal; ignored without a live terminal."""
        return self.registry.write(terminal_key(session_id), data)

    def resize_session(self, session_id: int, cols: int, rows: int) -> bool:
        """Resize a session's terminal; ignored without a live terminal."""
        return self.registry.resize(terminal_key(session_id), cols, rows)

    def on_terminal_output(
        self,
        session_id: int,
        callback: Callable[[int, bytes], None],
    ) -> Callable[[], None]:
        """
        Stream raw terminal output of a session.

        Returns:
            A callable that ends the subscription
        """
        def forward(_key: str, data: bytes) -> None:
            callback(session_id, data)

        return self.registry.subscribe_output(terminal_key(session_id), forward)

    # Queries

    def get_session(self, session_id: int) -> Session:
        """
        Raises:
            SessionNotFound: If the session does not exist
        """
        return self._require(session_id)

    def list_active(self) -> list[TerminalInfo]:
        return self.registry.list_active()

    # Exit reconciliation

    async def _on_terminal_exited(self, exited: TerminalExited) -> None:
        session_id = parse_terminal_key(exited.session_id)
        if session_id is None:
            return

        async with self._locks.hold(session_id):
            session = self.repository.get_session(session_id)
            if session is None or not session.status.is_live:
                return
            if session.pid is not None and session.pid != exited.pid:
                # Exit of an earlier process bound to the same key
                return
            session, event = await self._stop_locked(session, cause=f"terminal {exited.reason}")

        await self.events.publish(event)

    # Paused-session expiry

    def _schedule_expiry(self, session_id: int) -> None:
        timeout = self.config.sessions.paused_idle_timeout
        if timeout is None:
            return
        self._cancel_expiry(session_id)
        self._expiry_tasks[session_id] = asyncio.create_task(
            self._expire_paused(session_id, timeout), name=f"pause-expiry-{session_id}"
        )

    def _cancel_expiry(self, session_id: int) -> None:
        task = self._expiry_tasks.pop(session_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _expire_paused(self, session_id: int, timeout: float) -> None:
        await asyncio.sleep(timeout)
        self._expiry_tasks.pop(session_id, None)

        async with self._locks.hold(session_id):
            session = self.repository.get_session(session_id)
            if session is None or session.status != SessionStatus.PAUSED:
                return
            session, event = await self._stop_locked(session, cause="pause-expired")

        await self.events.publish(event)

    # Teardown

    async def shutdown(self) -> int:
        """
        Stop every session that still has a live terminal.

        Returns:
            Number of sessions stopped
        """
        stopped = 0
        for info in self.registry.list_active():
            session_id = parse_terminal_key(info.session_id)
            if session_id is None or self.repository.get_session(session_id) is None:
                await self.registry.destroy(info.session_id)
                continue
            session = await self.stop_session(session_id, cause="shutdown")
            if session.status == SessionStatus.STOPPED:
                stopped += 1

        for task in list(self._expiry_tasks.values()):
            task.cancel()
        self._expiry_tasks.clear()
        self._unsubscribe()
        return stopped
