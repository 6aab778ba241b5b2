"""
Command invoker for external AI command line tools.

Runs one engine call to completion: the prompt is passed as the last
element of an argument vector (never through a shell), output capture is
capped, and a wall-clock timeout kills the whole process group.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from pathlib import Path

from nwha.errors import CommandFailed, CommandTimeout, OutputTooLarge
from nwha.models.config import EngineConfig, EnginesConfig
from nwha.utils.helpers import format_bytes, truncate_string

logger = logging.getLogger(__name__)

READ_CHUNK = 64 * 1024
KILL_WAIT_SECONDS = 5.0


class CommandInvoker:
    """
    Runs a single external AI command per call.

    Example:
        >>> invoker = CommandInvoker("claude", ["claude", "-p"], timeout=120)
        >>> text = await invoker.invoke("Summarise the failing tests")
    """

    def __init__(
        self,
        name: str,
        command: list[str],
        timeout: float = 120.0,
        max_output_bytes: int = 10 * 1024 * 1024,
        cwd: str | Path | None = None,
    ):
        """
        Initialize the invoker.

        Args:
            name: Engine name reported in errors and outcomes
            command: Argument vector; the prompt is appended as the last argument
            timeout: Wall-clock limit in seconds
            max_output_bytes: Capture limit for stdout and stderr (each)
            cwd: Working directory for the engine process
        """
        if not command:
            raise ValueError("command must not be empty")
        self.name = name
        self.command = list(command)
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self.cwd = cwd

    @classmethod
    def from_config(cls, engine: EngineConfig, engines: EnginesConfig) -> "CommandInvoker":
        """Build an invoker for one configured engine."""
        return cls(
            name=engine.name,
            command=engine.get_command(),
            timeout=engines.command_timeout,
            max_output_bytes=engines.max_output_bytes,
        )

    def build_command(self, prompt: str) -> list[str]:
        """Full argument vector for a prompt."""
        return [*self.command, prompt]

    async def invoke(self, prompt: str, cwd: str | Path | None = None) -> str:
        """
        Run the engine with a prompt.

        Args:
            prompt: Prompt text; passed verbatim as one argument
            cwd: Override the working directory for this call

        Returns:
            The engine's standard output, stripped

        Raises:
            ValueError: If the prompt is empty
            CommandFailed: If the engine cannot be started or exits non-zero
            CommandTimeout: If the engine exceeds the timeout
            OutputTooLarge: If the engine exceeds the output limit
        """
        if not prompt or not prompt.strip():
            raise ValueError("prompt must not be empty")

        start_time = time.time()

        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_command(prompt),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd or self.cwd) if (cwd or self.cwd) else None,
                start_new_session=True,
            )
        except OSError as e:
            raise CommandFailed(self.name, f"Could not start '{self.command[0]}': {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(self._collect(proc), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise CommandTimeout(self.name, self.timeout) from None
        except BaseException:
            # OutputTooLarge, or the caller cancelled us
            await self._kill(proc)
            raise

        duration = time.time() - start_time
        output = stdout.decode("utf-8", errors="replace")

        if proc.returncode != 0:
            diagnostic = stderr.decode("utf-8", errors="replace").strip()
            if not diagnostic:
                diagnostic = output.strip() or f"{self.name} exited with code {proc.returncode}"
            logger.debug(
                f"{self.name} exited with {proc.returncode} after {duration:.1f}s: "
                f"{truncate_string(diagnostic, 200)}"
            )
            raise CommandFailed(self.name, diagnostic, exit_code=proc.returncode)

        logger.debug(f"{self.name} completed in {duration:.1f}s ({format_bytes(len(stdout))})")
        return output.strip()

    async def _collect(self, proc: asyncio.subprocess.Process) -> tuple[bytes, bytes]:
        """Read both pipes to EOF, then reap the process."""
        stdout = bytearray()
        stderr = bytearray()
        readers = [
            asyncio.ensure_future(self._read_stream(proc.stdout, stdout)),
            asyncio.ensure_future(self._read_stream(proc.stderr, stderr)),
        ]
        try:
            await asyncio.gather(*readers)
        finally:
            for reader in readers:
                reader.cancel()
        await proc.wait()
        return bytes(stdout), bytes(stderr)

    async def _read_stream(self, stream: asyncio.StreamReader | None, sink: bytearray) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(READ_CHUNK)
            if not chunk:
                return
            sink.extend(chunk)
            if len(sink) > self.max_output_bytes:
                raise OutputTooLarge(self.name, self.max_output_bytes)

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        """Kill the engine and anything it spawned, then reap it."""
        if proc.returncode is not None:
            return
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg({proc.pid}) failed: {e}")
            try:
                proc.kill()
            except ProcessLookupError:
                pass
        try:
            await asyncio.wait_for(proc.wait(), timeout=KILL_WAIT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"{self.name} (pid {proc.pid}) did not exit after SIGKILL")
