"""Change notifications emitted by storages.

Every storage owns an :class:`EventEmitter`. Listeners are registered per
:class:`EventType` and keyed by a subscription id, so they are notified in
subscription order and can be removed through the :class:`Subscription`
handle returned at registration.
"""

import inspect
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[Any], Awaitable[None] | None]


class EventType(Enum):
    """Kinds of changes a storage reports."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class Subscription:
    """Handle for a registered listener."""

    id: int
    event_type: EventType
    emitter: "EventEmitter" = field(repr=False, compare=False)

    @property
    def active(self) -> bool:
        """Whether the listener is still registered."""
        return self.emitter.is_subscribed(self)

    def cancel(self) -> bool:
        """Remove the listener. Returns False if it was already removed."""
        return self.emitter.unsubscribe(self)


class EventEmitter:
    """Per-storage listener registry."""

    def __init__(self):
        self._listeners: dict[EventType, dict[int, Listener]] = {
            event_type: {} for event_type in EventType
        }
        self._ids = itertools.count(1)

    def subscribe(self, event_type: EventType | str, listener: Listener) -> Subscription:
        """Register a listener for one event type."""
        event_type = EventType(event_type)
        if not callable(listener):
            raise TypeError(f"Listener must be callable, got {type(listener).__name__}")

        subscription = Subscription(next(self._ids), event_type, self)
        self._listeners[event_type][subscription.id] = listener
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a listener by its subscription handle."""
        listeners = self._listeners[subscription.event_type]
        return listeners.pop(subscription.id, None) is not None

    def is_subscribed(self, subscription: Subscription) -> bool:
        return subscription.id in self._listeners[subscription.event_type]

    def listener_count(self, event_type: EventType | str | None = None) -> int:
        """Count listeners, optionally for a single event type."""
        if event_type is None:
            return sum(len(listeners) for listeners in self._listeners.values())
        return len(self._listeners[EventType(event_type)])

    def clear(self) -> None:
        """Remove every listener."""
        for listeners in self._listeners.values():
            listeners.clear()

    async def emit(self, event_type: EventType, entry: Any) -> None:
        """Notify listeners in subscription order.

        Coroutine listeners are awaited before the next listener runs. A
        failing listener is logged and does not stop the others.
        """
        # Copy so listeners may unsubscribe while being notified
        for subscription_id, listener in list(self._listeners[event_type].items()):
            try:
                result = listener(entry)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    f"Listener {subscription_id} failed on {event_type.value} event"
                )
