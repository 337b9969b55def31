"""
The @handles decorator.

Marks aggregate methods as the apply-handler for one event class. The
aggregate base class discovers marked methods when the subclass is created.
"""

from collections.abc import Callable
from typing import Any, TypeVar

from relaymigrator.events.base import DomainEvent

F = TypeVar("F", bound=Callable[..., Any])


def handles(event_type: type[DomainEvent]) -> Callable[[F], F]:
    """
    Decorator to mark a method as the handler for an event type.

    Handlers are synchronous and take the event as their only argument:

        >>> class MigrationAggregate(DeclarativeAggregate[MigrationEngineState]):
        ...     @handles(RegistrationClosed)
        ...     def _on_registration_closed(self, event: RegistrationClosed) -> None:
        ...         ...

    Args:
        event_type: The DomainEvent subclass this handler processes
    """

    def decorator(func: F) -> F:
        func._handles_event_type = event_type  # type: ignore[attr-defined]
        return func

    return decorator


def get_handled_event_type(func: Callable[..., Any]) -> type[DomainEvent] | None:
    """Return the event type a function was decorated for, or None."""
    return getattr(func, "_handles_event_type", None)


__all__ = [
    "handles",
    "get_handled_event_type",
]
