"""Core components: storage, terminal registry, events and the session controller."""

from nwha.core.controller import SessionController
from nwha.core.events import EventBus
from nwha.core.limiter import IterationLimiter
from nwha.core.registry import ProcessHandle, ProcessRegistry
from nwha.core.storage import SessionRepository, SessionStorage

__all__ = [
    "SessionController",
    "EventBus",
    "IterationLimiter",
    "ProcessHandle",
    "ProcessRegistry",
    "SessionRepository",
    "SessionStorage",
]
