"""
Event type registry.

Stores keep an event's type name next to its JSON payload. Reading the
event back means finding the pydantic class registered under that name.
Every engine event registers itself in ``default_registry`` at import time.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING, TypeVar, overload

if TYPE_CHECKING:
    from relaymigrator.events.base import DomainEvent

logger = logging.getLogger(__name__)

TEvent = TypeVar("TEvent", bound="DomainEvent")


class EventTypeNotFoundError(KeyError):
    """A stored event names a type that no registered class claims."""

    def __init__(self, event_type: str, available_types: list[str]) -> None:
        self.event_type = event_type
        self.available_types = available_types
        known = ", ".join(sorted(available_types)) or "none"
        super().__init__(f"No event class registered as '{event_type}' (registered: {known})")


class DuplicateEventTypeError(ValueError):
    """Two different classes claim the same event type name."""

    def __init__(
        self,
        event_type: str,
        existing_class: type[DomainEvent],
        new_class: type[DomainEvent],
    ) -> None:
        self.event_type = event_type
        self.existing_class = existing_class
        self.new_class = new_class
        super().__init__(
            f"'{event_type}' is taken by {existing_class.__qualname__}; "
            f"cannot also register {new_class.__qualname__}"
        )


def type_name_of(event_class: type[DomainEvent]) -> str:
    """The name an event class is stored under: its pinned event_type or its class name."""
    pinned = event_class.model_fields.get("event_type")
    if pinned is not None and isinstance(pinned.default, str) and pinned.default:
        return pinned.default
    return event_class.__name__


class EventRegistry:
    """
    Mapping of event type names to event classes, safe to share across threads.

    Tests that declare throwaway events should use their own instance so the
    default registry only ever holds engine events.
    """

    def __init__(self) -> None:
        self._classes: dict[str, type[DomainEvent]] = {}
        self._lock = threading.RLock()

    def register(
        self,
        event_class: type[TEvent],
        event_type: str | None = None,
    ) -> type[TEvent]:
        """
        Register ``event_class`` under ``event_type`` (or its own type name).

        Re-registering the same class is allowed.

        Raises:
            DuplicateEventTypeError: If the name already belongs to another class
        """
        name = event_type or type_name_of(event_class)
        with self._lock:
            current = self._classes.setdefault(name, event_class)
        if current is not event_class:
            raise DuplicateEventTypeError(name, current, event_class)
        logger.debug("Event type %s -> %s", name, event_class.__qualname__)
        return event_class

    def get(self, event_type: str) -> type[DomainEvent]:
        """
        Raises:
            EventTypeNotFoundError: If nothing is registered under ``event_type``
        """
        with self._lock:
            try:
                return self._classes[event_type]
            except KeyError:
                raise EventTypeNotFoundError(event_type, list(self._classes)) from None

    def get_or_none(self, event_type: str) -> type[DomainEvent] | None:
        with self._lock:
            return self._classes.get(event_type)

    def list_types(self) -> list[str]:
        with self._lock:
            return sorted(self._classes)

    def unregister(self, event_type: str) -> bool:
        with self._lock:
            return self._classes.pop(event_type, None) is not None

    def __contains__(self, event_type: object) -> bool:
        with self._lock:
            return event_type in self._classes

    def __len__(self) -> int:
        with self._lock:
            return len(self._classes)

    def __iter__(self) -> Iterator[str]:
        return iter(self.list_types())


default_registry = EventRegistry()


@overload
def register_event(event_class: type[TEvent]) -> type[TEvent]: ...


@overload
def register_event(
    event_class: None = None,
    *,
    event_type: str | None = None,
    registry: EventRegistry | None = None,
) -> Callable[[type[TEvent]], type[TEvent]]: ...


def register_event(
    event_class: type[TEvent] | None = None,
    *,
    event_type: str | None = None,
    registry: EventRegistry | None = None,
) -> type[TEvent] | Callable[[type[TEvent]], type[TEvent]]:
    """
    Class decorator registering an event, usable bare or with arguments.

        @register_event
        class SuccessorDeployed(MigrationEngineEvent): ...

        @register_event(event_type="engine.closed", registry=my_registry)
        class Closed(DomainEvent): ...
    """
    target = default_registry if registry is None else registry

    def decorator(cls: type[TEvent]) -> type[TEvent]:
        return target.register(cls, event_type)

    return decorator if event_class is None else decorator(event_class)


def get_event_class(event_type: str) -> type[DomainEvent]:
    """Look ``event_type`` up in the default registry."""
    return default_registry.get(event_type)
