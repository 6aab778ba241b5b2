"""
Test configuration and fixtures.
"""

import asyncio
import shutil
import tempfile
from pathlib import Path

import pytest

from nwha.core.controller import SessionController
from nwha.core.events import EventBus
from nwha.core.registry import ProcessRegistry
from nwha.core.storage import SessionStorage
from nwha.errors import CommandFailed
from nwha.models.config import NwhaConfig
from nwha.models.engine import EngineRole, InvocationOutcome


class FakeInvoker:
    """Invoker double that answers from a script of replies and errors."""

    def __init__(self, name, *replies):
        self.name = name
        self.replies = list(replies) or ["ok"]
        self.calls = 0
        self.prompts = []

    async def invoke(self, prompt, cwd=None):
        self.calls += 1
        self.prompts.append(prompt)
        reply = self.replies[min(self.calls, len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeResponder:
    """Responder double for the controller with an optional hold gate."""

    def __init__(self, text="echo ok", engine="fake", error=None):
        self.text = text
        self.engine = engine
        self.error = error
        self.calls = 0
        self.started = asyncio.Event()
        self.release = None

    def hold(self):
        """Block responses until ``release.set()``."""
        self.release = asyncio.Event()
        return self.release

    async def respond(self, prompt, cwd=None):
        self.calls += 1
        self.started.set()
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return InvocationOutcome(text=self.text, engine=self.engine, role=EngineRole.PRIMARY)


def make_config(root, **sessions):
    """Config rooted in a temporary directory with a cat terminal."""
    root = Path(root)
    return NwhaConfig(
        sessions={"projects_root_directory": str(root / "projects"), **sessions},
        storage={"data_dir": str(root / "data")},
        terminal={"shell": ["cat"], "destroy_grace_seconds": 0.5},
    )


async def wait_until(predicate, timeout=5.0):
    """Poll until ``predicate()`` is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.02)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    tmp = tempfile.mkdtemp()
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def storage(temp_dir):
    """Create a SessionStorage instance."""
    return SessionStorage(Path(temp_dir) / "data")


@pytest.fixture
def project(storage):
    """A project owned by owner 1."""
    return storage.create_project(owner_id=1, name="My App")


@pytest.fixture
def config(temp_dir):
    return make_config(temp_dir)


@pytest.fixture
def responder():
    return FakeResponder()


@pytest.fixture
async def registry():
    """Registry with a short destroy grace; torn down after the test."""
    registry = ProcessRegistry(EventBus(), destroy_grace=0.5)
    yield registry
    await registry.destroy_all()


@pytest.fixture
async def controller(storage, config, responder):
    """Controller over real storage and terminals with a fake responder."""
    registry = ProcessRegistry(EventBus(), destroy_grace=0.5)
    controller = SessionController(storage, registry, responder, config=config)
    yield controller
    await controller.shutdown()


@pytest.fixture
def failing():
    """CommandFailed factory for fallback tests."""
    def factory(engine, message="broke"):
        return CommandFailed(engine, message, exit_code=1)
    return factory
