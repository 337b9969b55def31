"""
Event bus interface.

The bus delivers committed engine events to in-process subscribers such as
the migration error log or an operator alert hook. Repositories publish to
it after every successful save.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from relaymigrator.events.base import DomainEvent

# Plain function subscriber, sync or async
EventHandlerFunc = Callable[[DomainEvent], Awaitable[None] | None]


class EventBus(ABC):
    """
    Abstract event bus for publishing and subscribing to engine events.

    Implementations must accept sync and async handlers and must keep one
    failing handler from affecting the others.

    Example:
        >>> bus = InMemoryEventBus()
        >>> bus.subscribe(MigrationError, alert_operator)
        >>> bus.subscribe_to_all_events(audit_log)
        >>> await bus.publish(events)
    """

    @abstractmethod
    async def publish(self, events: list[DomainEvent]) -> None:
        """Deliver events, in order, to every matching subscriber."""

    @abstractmethod
    def subscribe(self, event_type: type[DomainEvent], handler: Any) -> None:
        """Subscribe a handler to one event type (and its subclasses)."""

    @abstractmethod
    def unsubscribe(self, event_type: type[DomainEvent], handler: Any) -> bool:
        """Remove a handler. Returns False if it was not subscribed."""

    @abstractmethod
    def subscribe_to_all_events(self, handler: Any) -> None:
        """Subscribe a handler to every event (wildcard subscription)."""


__all__ = [
    "EventBus",
    "EventHandlerFunc",
]
