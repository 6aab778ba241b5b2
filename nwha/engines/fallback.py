"""
Primary/secondary engine coordination.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Protocol

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from nwha.errors import BothFailed, InvocationError, PrimaryFailed
from nwha.engines.invoker import CommandInvoker
from nwha.models.config import EnginesConfig
from nwha.models.engine import EngineRole, InvocationOutcome
from nwha.utils.logger import log_invocation

logger = logging.getLogger(__name__)


class Invoker(Protocol):
    """Anything that can answer a prompt like a CommandInvoker."""

    name: str

    async def invoke(self, prompt: str, cwd: str | Path | None = None) -> str:
        ...


class FallbackCoordinator:
    """
    Obtains a response from the primary engine, falling back to the secondary.

    The coordinator holds no mutable state, so one instance can serve every
    session concurrently.

    Example:
        >>> coordinator = FallbackCoordinator.from_config(config.engines)
        >>> outcome = await coordinator.respond("Continue with the next task")
        >>> print(outcome.engine, outcome.text)
    """

    def __init__(
        self,
        primary: Invoker,
        secondary: Invoker | None = None,
        fallback_enabled: bool = True,
        attempts: int = 1,
    ):
        """
        Initialize the coordinator.

        Args:
            primary: Engine tried first
            secondary: Engine tried when the primary fails
            fallback_enabled: Whether the secondary may be used at all
            attempts: Calls per engine before it counts as failed
        """
        self.primary = primary
        self.secondary = secondary
        self.fallback_enabled = fallback_enabled and secondary is not None
        self.attempts = max(1, attempts)

    @classmethod
    def from_config(cls, engines: EnginesConfig) -> "FallbackCoordinator":
        """Build a coordinator with command invokers for both configured engines."""
        return cls(
            primary=CommandInvoker.from_config(engines.primary, engines),
            secondary=CommandInvoker.from_config(engines.secondary, engines),
            fallback_enabled=engines.fallback_enabled,
            attempts=engines.attempts,
        )

    async def respond(self, prompt: str, cwd: str | Path | None = None) -> InvocationOutcome:
        """
        Get a response, trying the secondary engine if the primary fails.

        Args:
            prompt: Prompt text
            cwd: Working directory for the engine process

        Returns:
            InvocationOutcome naming the engine that answered

        Raises:
            ValueError: If the prompt is empty
            PrimaryFailed: If the primary failed and fallback is disabled
            BothFailed: If both engines failed
        """
        if not prompt or not prompt.strip():
            raise ValueError("prompt must not be empty")

        start_time = time.time()

        try:
            text = await self._call(self.primary, prompt, cwd)
            return InvocationOutcome(
                text=text,
                engine=self.primary.name,
                role=EngineRole.PRIMARY,
                duration=time.time() - start_time,
            )
        except InvocationError as primary_error:
            if not self.fallback_enabled:
                raise PrimaryFailed(primary_error) from primary_error

            logger.warning(
                f"{self.primary.name} failed, falling back to {self.secondary.name}: "
                f"{primary_error.message}"
            )
            try:
                text = await self._call(self.secondary, prompt, cwd)
            except InvocationError as secondary_error:
                raise BothFailed(primary_error, secondary_error) from secondary_error

            return InvocationOutcome(
                text=text,
                engine=self.secondary.name,
                role=EngineRole.SECONDARY,
                duration=time.time() - start_time,
            )

    async def _call(self, invoker: Invoker, prompt: str, cwd: str | Path | None) -> str:
        """Call one engine, retrying invocation errors up to the attempt limit."""
        start_time = time.time()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.attempts),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                retry=retry_if_exception_type(InvocationError),
                reraise=True,
            ):
                with attempt:
                    text = await invoker.invoke(prompt, cwd=cwd)
        except InvocationError as e:
            log_invocation(logger, invoker.name, False, time.time() - start_time, e.message)
            raise

        log_invocation(logger, invoker.name, True, time.time() - start_time)
        return text
