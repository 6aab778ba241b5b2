"""
Tests for primary/secondary engine coordination.
"""

import pytest

from conftest import FakeInvoker
from nwha.engines.fallback import FallbackCoordinator
from nwha.engines.invoker import CommandInvoker
from nwha.errors import BothFailed, CommandTimeout, EngineUnavailable, PrimaryFailed
from nwha.models.config import EnginesConfig
from nwha.models.engine import EngineRole


class TestFallbackCoordinator:
    """Tests for FallbackCoordinator.respond."""

    async def test_primary_success(self):
        primary = FakeInvoker("claude", "from claude")
        secondary = FakeInvoker("codex", "from codex")
        coordinator = FallbackCoordinator(primary, secondary)

        outcome = await coordinator.respond("do it")

        assert outcome.text == "from claude"
        assert outcome.engine == "claude"
        assert outcome.role == EngineRole.PRIMARY
        assert not outcome.used_fallback
        assert secondary.calls == 0

    async def test_falls_back_to_secondary(self, failing):
        primary = FakeInvoker("claude", failing("claude"))
        secondary = FakeInvoker("codex", "from codex")
        coordinator = FallbackCoordinator(primary, secondary)

        outcome = await coordinator.respond("do it")

        assert outcome.text == "from codex"
        assert outcome.engine == "codex"
        assert outcome.used_fallback
        assert primary.calls == 1
        assert secondary.prompts == ["do it"]

    async def test_timeout_triggers_fallback(self):
        primary = FakeInvoker("claude", CommandTimeout("claude", 120))
        secondary = FakeInvoker("codex", "late but fine")
        coordinator = FallbackCoordinator(primary, secondary)

        outcome = await coordinator.respond("do it")
        assert outcome.engine == "codex"

    async def test_fallback_disabled(self, failing):
        primary = FakeInvoker("claude", failing("claude", "rate limited"))
        secondary = FakeInvoker("codex", "unused")
        coordinator = FallbackCoordinator(primary, secondary, fallback_enabled=False)

        with pytest.raises(PrimaryFailed) as exc:
            await coordinator.respond("do it")

        assert exc.value.message == "claude CLI failed: rate limited"
        assert secondary.calls == 0

    async def test_no_secondary_means_no_fallback(self, failing):
        coordinator = FallbackCoordinator(FakeInvoker("claude", failing("claude")))
        with pytest.raises(PrimaryFailed):
            await coordinator.respond("do it")

    async def test_both_fail(self, failing):
        primary = FakeInvoker("A", failing("A", "a broke"))
        secondary = FakeInvoker("B", failing("B", "b broke"))
        coordinator = FallbackCoordinator(primary, secondary)

        with pytest.raises(BothFailed) as exc:
            await coordinator.respond("do it")

        assert isinstance(exc.value, EngineUnavailable)
        assert exc.value.message == "Both A and B failed. A: a broke, B: b broke"
        assert exc.value.primary_error.engine == "A"
        assert exc.value.secondary_error.engine == "B"

    async def test_each_engine_called_once_by_default(self, failing):
        primary = FakeInvoker("A", failing("A"))
        secondary = FakeInvoker("B", failing("B"))
        coordinator = FallbackCoordinator(primary, secondary)

        with pytest.raises(BothFailed):
            await coordinator.respond("do it")

        assert primary.calls == 1
        assert secondary.calls == 1

    async def test_retries_primary_before_falling_back(self, failing):
        primary = FakeInvoker("claude", failing("claude"), "second try")
        secondary = FakeInvoker("codex", "unused")
        coordinator = FallbackCoordinator(primary, secondary, attempts=2)

        outcome = await coordinator.respond("do it")

        assert outcome.text == "second try"
        assert primary.calls == 2
        assert secondary.calls == 0

    async def test_empty_prompt_invokes_nothing(self):
        primary = FakeInvoker("claude")
        coordinator = FallbackCoordinator(primary, FakeInvoker("codex"))
        with pytest.raises(ValueError):
            await coordinator.respond("  ")
        assert primary.calls == 0

    async def test_with_real_commands(self):
        coordinator = FallbackCoordinator(
            CommandInvoker("broken", ["false"]),
            CommandInvoker("printf", ["printf", "%s"]),
        )
        outcome = await coordinator.respond("hello")
        assert outcome.engine == "printf"
        assert outcome.text == "hello"


class TestFallbackFromConfig:
    """Tests for building a coordinator from configuration."""

    def test_from_config(self):
        engines = EnginesConfig(fallback_enabled=False, attempts=3)
        coordinator = FallbackCoordinator.from_config(engines)

        assert coordinator.primary.name == "claude"
        assert coordinator.secondary.name == "codex"
        assert coordinator.fallback_enabled is False
        assert coordinator.attempts == 3
