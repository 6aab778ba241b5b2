"""
In-process event channel.

Components publish typed events (pydantic models) and subscribers register
per event class. The registry uses it to announce terminal exits without
knowing who listens; the controller announces status transitions.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)


EventHandler = Callable[[Any], Union[None, Awaitable[None]]]


class EventBus:
    """
    Pub/sub bus keyed by event class.

    Handlers may be plain functions or coroutine functions; ``publish``
    awaits each one in subscription order. A failing handler is logged and
    does not prevent delivery to the others.

    Example:
        >>> bus = EventBus()
        >>> bus.subscribe(TerminalExited, on_exit)
        >>> await bus.publish(TerminalExited(session_id="session-1", pid=42))
    """

    def __init__(self):
        self._handlers: dict[type, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: type, handler: EventHandler) -> Callable[[], None]:
        """
        Subscribe a handler to an event class (and its subclasses).

        Returns:
            A callable that removes the subscription
        """
        self._handlers[event_type].append(handler)
        logger.debug(f"Subscribed handler to {event_type.__name__}")

        def unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return unsubscribe

    def unsubscribe(self, event_type: type, handler: EventHandler) -> bool:
        """
        Remove a handler.

        Returns:
            True if the handler was removed, False if not found
        """
        try:
            self._handlers[event_type].remove(handler)
            return True
        except ValueError:
            return False

    async def publish(self, event: Any) -> int:
        """
        Deliver an event to every matching handler.

        Returns:
            Number of handlers that completed without error
        """
        delivered = 0
        for event_type, handlers in list(self._handlers.items()):
            if not isinstance(event, event_type):
                continue
            for handler in list(handlers):
                try:
                    result = handler(event)
                    if inspect.isawaitable(result):
                        await result
                    delivered += 1
                except Exception as e:
                    logger.error(
                        f"Error in {type(event).__name__} handler: {e}", exc_info=True
                    )
        return delivered
