"""
Registry of live session terminals.

Each entry is one process attached to a pseudo-terminal, keyed by a
session key such as ``session-42``. The registry is the sole owner of the
processes: other components refer to them by key only.
"""

from __future__ import annotations

import asyncio
import fcntl
import logging
import os
import pty
import signal
import struct
import termios
from datetime import datetime
from typing import Callable

from nwha.core.events import EventBus
from nwha.core.locks import KeyedLocks
from nwha.errors import TerminalSpawnError
from nwha.models.terminal import TerminalExited, TerminalInfo, TerminalOptions

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024
# Output still buffered when a process exits is forwarded up to this many reads
DRAIN_CHUNKS = 64

OutputCallback = Callable[[str, bytes], None]


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def _make_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is already the pty slave.
    try:
        fcntl.ioctl(0, termios.TIOCSCTTY, 0)
    except OSError:
        pass


class ProcessHandle:
    """A live process attached to a pseudo-terminal."""

    def __init__(
        self,
        session_id: str,
        process: asyncio.subprocess.Process,
        master_fd: int,
        cols: int,
        rows: int,
    ):
        self.session_id = session_id
        self.process = process
        self.pid = process.pid
        self.master_fd = master_fd
        self.cols = cols
        self.rows = rows
        self.created_at = datetime.now()
        self.destroy_requested = False
        self._closed = False
        self._pending = bytearray()
        self._watcher: asyncio.Task | None = None

    @property
    def is_alive(self) -> bool:
        return self.process.returncode is None

    def info(self) -> TerminalInfo:
        return TerminalInfo(
            session_id=self.session_id,
            pid=self.pid,
            cols=self.cols,
            rows=self.rows,
            created_at=self.created_at,
        )

    def close_pty(self) -> None:
        """Stop reading and release the master side of the terminal."""
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        try:
            loop = asyncio.get_running_loop()
            loop.remove_reader(self.master_fd)
            loop.remove_writer(self.master_fd)
        except RuntimeError:
            pass
        try:
            os.close(self.master_fd)
        except OSError:
            pass


class ProcessRegistry:
    """
    Owns every live session terminal.

    Creation and destruction are serialized per key so that concurrent
    ``create`` calls spawn at most one process and ``destroy`` of a missing
    key stays a no-op. Whenever a process exits, for whatever reason, its
    entry is dropped and a ``TerminalExited`` event is published on the bus.

    Example:
        >>> registry = ProcessRegistry(EventBus())
        >>> handle = await registry.create("session-1", TerminalOptions(cwd=project_dir))
        >>> registry.write("session-1", "ls\\n")
        >>> await registry.destroy("session-1")
    """

    def __init__(self, events: EventBus | None = None, destroy_grace: float = 2.0):
        """
        Initialize an empty registry.

        Args:
            events: Bus receiving TerminalExited events
            destroy_grace: Seconds to wait after SIGTERM (and again after
                SIGKILL) before giving up on a process in ``destroy``
        """
        self.events = events or EventBus()
        self.destroy_grace = destroy_grace
        self._handles: dict[str, ProcessHandle] = {}
        self._locks = KeyedLocks()
        self._output_subscribers: dict[str, list[OutputCallback]] = {}

    async def create(
        self,
        session_id: str,
        options: TerminalOptions | None = None,
    ) -> ProcessHandle:
        """
        Spawn a terminal for a key, or return the one it already has.

        Raises:
            TerminalSpawnError: If the process cannot be started
        """
        options = options or TerminalOptions()

        async with self._locks.hold(session_id):
            existing = self._handles.get(session_id)
            if existing is not None:
                return existing

            handle = await self._spawn(session_id, options)
            self._handles[session_id] = handle

            loop = asyncio.get_running_loop()
            loop.add_reader(handle.master_fd, self._on_readable, handle)
            handle._watcher = asyncio.create_task(
                self._watch(handle), name=f"terminal-watch-{session_id}"
            )

        logger.info(f"Spawned terminal for [cyan]{session_id}[/] (pid {handle.pid})")
        return handle

    async def _spawn(self, session_id: str, options: TerminalOptions) -> ProcessHandle:
        env = os.environ.copy()
        env.update(options.env or {})
        env["TERM"] = options.term

        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise TerminalSpawnError(session_id, f"no pseudo-terminal available: {e}") from e

        try:
            _set_winsize(slave_fd, options.rows, options.cols)
            process = await asyncio.create_subprocess_exec(
                *options.command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=str(options.cwd) if options.cwd else None,
                env=env,
                start_new_session=True,
                preexec_fn=_make_controlling_tty,
            )
        except OSError as e:
            os.close(master_fd)
            raise TerminalSpawnError(session_id, str(e)) from e
        finally:
            os.close(slave_fd)

        os.set_blocking(master_fd, False)
        return ProcessHandle(session_id, process, master_fd, options.cols, options.rows)

    def get(self, session_id: str) -> ProcessHandle | None:
        return self._handles.get(session_id)

    def write(self, session_id: str, data: str | bytes) -> bool:
        """
        Send input to a terminal.

        Whatever the terminal cannot take right away is queued on the handle
        and flushed, in order, as the terminal becomes writable.

        Returns:
            True if the data was delivered or queued, False if there is no
            live terminal
        """
        handle = self._handles.get(session_id)
        if handle is None or handle._closed:
            return False

        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        if handle._pending:
            handle._pending += payload
            return True

        try:
            written = os.write(handle.master_fd, payload) if payload else 0
        except BlockingIOError:
            written = 0
        except OSError as e:
            logger.debug(f"Write to {session_id} failed: {e}")
            return False

        if written < len(payload):
            handle._pending += payload[written:]
            asyncio.get_running_loop().add_writer(
                handle.master_fd, self._on_writable, handle
            )
            logger.debug(
                f"Queued {len(handle._pending)} bytes of input for {session_id}"
            )
        return True

    def resize(self, session_id: str, cols: int, rows: int) -> bool:
        """
        Change a terminal's geometry.

        Returns:
            True if resized, False if there is no live terminal
        """
        handle = self._handles.get(session_id)
        if handle is None:
            return False
        if cols < 1 or rows < 1:
            raise ValueError(f"Invalid terminal size {cols}x{rows}")

        try:
            _set_winsize(handle.master_fd, rows, cols)
        except OSError as e:
            logger.debug(f"Resize of {session_id} failed: {e}")
            return False

        handle.cols = cols
        handle.rows = rows
        return True

    async def destroy(self, session_id: str) -> bool:
        """
        Terminate a terminal and drop its entry.

        Sends SIGTERM to the process group, escalates to SIGKILL after the
        grace period, and removes the entry even if the process could not
        be reaped. Never raises for termination failures.

        Returns:
            True if an entry was removed, False if there was none
        """
        async with self._locks.hold(session_id):
            handle = self._handles.pop(session_id, None)
            if handle is None:
                return False

            handle.destroy_requested = True
            await self._terminate(handle)
            handle.close_pty()

        logger.info(f"Destroyed terminal for [cyan]{session_id}[/] (pid {handle.pid})")
        return True

    async def _terminate(self, handle: ProcessHandle) -> None:
        for sig in (signal.SIGTERM, signal.SIGKILL):
            if not handle.is_alive:
                return
            self._signal(handle, sig)
            try:
                await asyncio.wait_for(handle.process.wait(), timeout=self.destroy_grace)
                return
            except asyncio.TimeoutError:
                logger.debug(f"pid {handle.pid} still alive {self.destroy_grace}s after {sig.name}")

        logger.warning(f"Terminal {handle.session_id} (pid {handle.pid}) could not be reaped")

    @staticmethod
    def _signal(handle: ProcessHandle, sig: signal.Signals) -> None:
        try:
            os.killpg(handle.pid, sig)
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg({handle.pid}, {sig.name}) failed: {e}")
            try:
                handle.process.send_signal(sig)
            except ProcessLookupError:
                pass

    async def destroy_all(self) -> int:
        """Destroy every terminal; returns how many were removed."""
        removed = 0
        for session_id in list(self._handles):
            if await self.destroy(session_id):
                removed += 1
        return removed

    def list_active(self) -> list[TerminalInfo]:
        """Snapshot of live terminals in creation order."""
        return [handle.info() for handle in self._handles.values()]

    def subscribe_output(self, session_id: str, callback: OutputCallback) -> Callable[[], None]:
        """
        Receive raw output of a terminal as ``callback(session_id, data)``.

        The subscription is keyed, so it survives the terminal being
        recreated under the same key.

        Returns:
            A callable that removes the subscription
        """
        self._output_subscribers.setdefault(session_id, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._output_subscribers.get(session_id, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._output_subscribers.pop(session_id, None)

        return unsubscribe

    def _on_writable(self, handle: ProcessHandle) -> None:
        loop = asyncio.get_running_loop()
        if handle._closed:
            return
        try:
            while handle._pending:
                written = os.write(handle.master_fd, handle._pending)
                del handle._pending[:written]
        except BlockingIOError:
            return
        except OSError as e:
            logger.debug(
                f"Dropping {len(handle._pending)} bytes of input for {handle.session_id}: {e}"
            )
            handle._pending.clear()
        loop.remove_writer(handle.master_fd)

    def _on_readable(self, handle: ProcessHandle) -> None:
        self._read_once(handle)

    def _read_once(self, handle: ProcessHandle) -> bool:
        """Read one chunk and fan it out; False once nothing is left to read."""
        if handle._closed:
            return False
        try:
            data = os.read(handle.master_fd, READ_CHUNK)
        except BlockingIOError:
            return False
        except OSError:
            # EIO once the slave side is gone
            data = b""

        if not data:
            handle.close_pty()
            return False

        for callback in list(self._output_subscribers.get(handle.session_id, [])):
            try:
                callback(handle.session_id, data)
            except Exception as e:
                logger.error(f"Error in output subscriber for {handle.session_id}: {e}")
        return True

    async def _watch(self, handle: ProcessHandle) -> None:
        exit_code = await handle.process.wait()

        # The registry lock is held by destroy() while it waits for this same
        # exit, so only drop the entry if it still belongs to this handle.
        if self._handles.get(handle.session_id) is handle:
            del self._handles[handle.session_id]
            for _ in range(DRAIN_CHUNKS):
                if not self._read_once(handle):
                    break
            handle.close_pty()
            logger.info(
                f"Terminal for [cyan]{handle.session_id}[/] exited with code {exit_code}"
            )

        await self.events.publish(
            TerminalExited(
                session_id=handle.session_id,
                pid=handle.pid,
                exit_code=exit_code,
                requested=handle.destroy_requested,
            )
        )
