"""
Tests for the command invoker.

These run real POSIX tools (printf, sh, sleep, yes, false) in place of the
AI command line engines.
"""

import time
from pathlib import Path

import pytest

from nwha.engines.invoker import CommandInvoker
from nwha.errors import CommandFailed, CommandTimeout, InvocationError, OutputTooLarge
from nwha.models.config import EngineConfig, EnginesConfig


class TestCommandInvoker:
    """Tests for running a single engine call."""

    async def test_returns_trimmed_stdout(self):
        invoker = CommandInvoker("echo", ["echo"])
        assert await invoker.invoke("hello world") == "hello world"

    async def test_prompt_passed_verbatim(self):
        """Shell metacharacters reach the engine as one literal argument."""
        prompt = "$(touch pwned) `id` | cat; rm -rf / && echo 'quoted' \"double\""
        invoker = CommandInvoker("printf", ["printf", "%s"])
        assert await invoker.invoke(prompt) == prompt

    async def test_runs_in_working_directory(self, temp_dir):
        invoker = CommandInvoker("pwd", ["sh", "-c", "pwd", "sh"])
        text = await invoker.invoke("ignored", cwd=temp_dir)
        assert Path(text).resolve() == Path(temp_dir).resolve()

    async def test_nonzero_exit_without_output(self):
        invoker = CommandInvoker("false", ["false"])
        with pytest.raises(CommandFailed) as exc:
            await invoker.invoke("anything")
        assert exc.value.exit_code == 1
        assert exc.value.engine == "false"
        assert "exited with code 1" in exc.value.message

    async def test_nonzero_exit_uses_stderr_diagnostic(self):
        invoker = CommandInvoker("sh", ["sh", "-c", "echo boom >&2; exit 3", "sh"])
        with pytest.raises(CommandFailed) as exc:
            await invoker.invoke("anything")
        assert exc.value.exit_code == 3
        assert exc.value.diagnostic == "boom"

    async def test_missing_binary(self):
        invoker = CommandInvoker("ghost", ["nwha-test-no-such-engine-binary"])
        with pytest.raises(CommandFailed) as exc:
            await invoker.invoke("anything")
        assert exc.value.exit_code is None

    async def test_timeout_kills_process(self):
        invoker = CommandInvoker("sleep", ["sleep"], timeout=0.2)
        start = time.monotonic()
        with pytest.raises(CommandTimeout) as exc:
            await invoker.invoke("10")
        assert time.monotonic() - start < 5
        assert exc.value.timeout == 0.2

    async def test_output_limit(self):
        invoker = CommandInvoker("yes", ["yes"], max_output_bytes=1024)
        with pytest.raises(OutputTooLarge) as exc:
            await invoker.invoke("y")
        assert exc.value.limit == 1024
        assert exc.value.message == "yes output exceeded 1.0 KB"

    async def test_invocation_errors_share_base(self):
        assert issubclass(CommandFailed, InvocationError)
        assert issubclass(CommandTimeout, InvocationError)
        assert issubclass(OutputTooLarge, InvocationError)

    @pytest.mark.parametrize("prompt", ["", "   ", "\n"])
    async def test_empty_prompt_rejected(self, prompt):
        invoker = CommandInvoker("echo", ["echo"])
        with pytest.raises(ValueError):
            await invoker.invoke(prompt)

    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            CommandInvoker("nothing", [])


class TestInvokerFromConfig:
    """Tests for building invokers from configuration."""

    def test_known_engine_defaults(self):
        engines = EnginesConfig(command_timeout_ms=5000, max_output_bytes=2048)
        invoker = CommandInvoker.from_config(engines.primary, engines)

        assert invoker.name == "claude"
        assert invoker.build_command("go") == ["claude", "--dangerously-skip-permissions", "-p", "go"]
        assert invoker.timeout == 5.0
        assert invoker.max_output_bytes == 2048

    def test_custom_command(self):
        engine = EngineConfig(name="local", command=["my-agent", "--quiet"])
        invoker = CommandInvoker.from_config(engine, EnginesConfig())
        assert invoker.build_command("go") == ["my-agent", "--quiet", "go"]
