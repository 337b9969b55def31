"""
Uniform async calling of bus subscribers.

A subscriber is any of: a function, a coroutine function, or an object
whose ``handle`` method is either. ``HandlerAdapter`` resolves which once,
at subscription time, so delivery is always ``await adapter.handle(event)``.
"""

import inspect
from typing import Any

from relaymigrator.events.base import DomainEvent


def get_handler_name(handler: Any) -> str:
    """Qualified name for functions and methods, class name for handler objects."""
    if inspect.isfunction(handler) or inspect.ismethod(handler):
        return str(handler.__qualname__)
    if hasattr(handler, "handle"):
        return type(handler).__name__
    return str(getattr(handler, "__name__", repr(handler)))


class HandlerAdapter:
    """
    Wraps one subscriber.

    Compares equal to the subscriber it wraps, which is how the bus finds
    it again on unsubscribe.

    Raises:
        TypeError: If the subscriber is neither callable nor has ``handle``
    """

    __slots__ = ("_call", "_is_coroutine", "_name", "_original")

    def __init__(self, handler: Any) -> None:
        call = getattr(handler, "handle", handler)
        if not callable(call):
            raise TypeError(f"Subscriber needs a handle() method or must be callable: {handler!r}")
        self._original = handler
        self._call = call
        self._is_coroutine = inspect.iscoroutinefunction(call)
        self._name = get_handler_name(handler)

    @property
    def original(self) -> Any:
        return self._original

    @property
    def name(self) -> str:
        return self._name

    async def handle(self, event: DomainEvent) -> None:
        if self._is_coroutine:
            await self._call(event)
            return
        # Sync callables may still hand back an awaitable
        outcome = self._call(event)
        if inspect.isawaitable(outcome):
            await outcome

    def __eq__(self, other: object) -> bool:
        target = other._original if isinstance(other, HandlerAdapter) else other
        return self._original is target

    def __hash__(self) -> int:
        return id(self._original)

    def __repr__(self) -> str:
        return f"<HandlerAdapter {self._name}>"


__all__ = [
    "HandlerAdapter",
    "get_handler_name",
]
