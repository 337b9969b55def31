"""
In-process event bus.

Repositories publish each committed batch here. Subscribers receive events
whose class is, or derives from, the type they subscribed to; wildcard
subscribers receive everything. A subscriber that raises is logged and
counted, and never stops delivery to the rest.
"""

import asyncio
import logging
import threading
from collections import Counter
from typing import Any, Protocol

from relaymigrator.bus.interface import EventBus
from relaymigrator.events.base import DomainEvent
from relaymigrator.handlers.adapter import HandlerAdapter, get_handler_name
from relaymigrator.observability import Tracer, create_tracer
from relaymigrator.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_ERROR_TYPE,
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_HANDLER_COUNT,
    ATTR_HANDLER_NAME,
    ATTR_HANDLER_SUCCESS,
)

logger = logging.getLogger(__name__)

# Key for wildcard subscriptions in the routing table
_ANY = object()


class EventSubscriber(Protocol):
    """A handler that declares which event types it wants."""

    def subscribed_to(self) -> list[type[DomainEvent]]: ...

    def handle(self, event: DomainEvent) -> Any: ...


class InMemoryEventBus(EventBus):
    """
    Delivers events to subscribers in the same process.

    Events of one ``publish`` call are delivered one after another in order;
    the subscribers of a single event run concurrently. Subscription changes
    are guarded by a lock so they may come from other threads.

    Example:
        >>> bus = InMemoryEventBus()
        >>> bus.subscribe_all(MigrationErrorLog())
        >>> engine = MigrationEngine(engine_id, store, ..., event_bus=bus)
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._routes: dict[object, list[HandlerAdapter]] = {}
        self._lock = threading.RLock()
        self._counters: Counter[str] = Counter()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    # Subscriptions

    def _add(self, key: object, handler: Any) -> HandlerAdapter:
        adapter = HandlerAdapter(handler)
        with self._lock:
            self._routes.setdefault(key, []).append(adapter)
        return adapter

    def subscribe(self, event_type: type[DomainEvent], handler: Any) -> None:
        adapter = self._add(event_type, handler)
        logger.info("Subscribed %s to %s", adapter.name, event_type.__name__)

    def subscribe_all(self, subscriber: EventSubscriber) -> None:
        """Subscribe ``subscriber`` to every type it lists in ``subscribed_to()``."""
        for event_type in subscriber.subscribed_to():
            self.subscribe(event_type, subscriber)

    def subscribe_to_all_events(self, handler: Any) -> None:
        adapter = self._add(_ANY, handler)
        logger.info("Subscribed %s to all events", adapter.name)

    def unsubscribe(self, event_type: type[DomainEvent], handler: Any) -> bool:
        with self._lock:
            adapters = self._routes.get(event_type, [])
            if handler not in adapters:
                return False
            adapters.remove(handler)
        logger.info("Unsubscribed %s from %s", get_handler_name(handler), event_type.__name__)
        return True

    def clear_subscribers(self) -> None:
        with self._lock:
            self._routes.clear()

    def get_subscriber_count(self, event_type: type[DomainEvent] | None = None) -> int:
        """Typed subscriptions for ``event_type``, or across all types when None."""
        with self._lock:
            if event_type is not None:
                return len(self._routes.get(event_type, []))
            return sum(len(adapters) for key, adapters in self._routes.items() if key is not _ANY)

    def get_stats(self) -> dict[str, int]:
        return {
            key: self._counters[key]
            for key in ("events_published", "handlers_invoked", "handler_errors")
        }

    def _route(self, event: DomainEvent) -> list[HandlerAdapter]:
        with self._lock:
            keys: list[object] = [*type(event).__mro__, _ANY]
            candidates = [adapter for key in keys for adapter in self._routes.get(key, [])]
        # Subscribed through several matching types still means one delivery
        seen: set[int] = set()
        route = []
        for adapter in candidates:
            if id(adapter.original) not in seen:
                seen.add(id(adapter.original))
                route.append(adapter)
        return route

    # Delivery

    async def publish(self, events: list[DomainEvent]) -> None:
        for event in events:
            route = self._route(event)
            if route:
                await self._deliver(event, route)
            else:
                logger.debug("No subscribers for %s", event.event_type)
            self._counters["events_published"] += 1

    async def _deliver(self, event: DomainEvent, route: list[HandlerAdapter]) -> None:
        logger.debug(
            "Delivering %s %s to %d subscriber(s)",
            event.event_type,
            event.event_id,
            len(route),
            extra={"event_id": str(event.event_id), "aggregate_id": str(event.aggregate_id)},
        )
        with self._tracer.span(
            "relaymigrator.event_bus.dispatch",
            {
                ATTR_EVENT_TYPE: type(event).__name__,
                ATTR_EVENT_ID: str(event.event_id),
                ATTR_AGGREGATE_ID: str(event.aggregate_id),
                ATTR_HANDLER_COUNT: len(route),
            },
        ):
            await asyncio.gather(*(self._invoke(adapter, event) for adapter in route))

    async def _invoke(self, adapter: HandlerAdapter, event: DomainEvent) -> None:
        with self._tracer.span(
            "relaymigrator.event_bus.handle",
            {
                ATTR_EVENT_TYPE: type(event).__name__,
                ATTR_EVENT_ID: str(event.event_id),
                ATTR_HANDLER_NAME: adapter.name,
            },
        ) as span:
            try:
                await adapter.handle(event)
            except Exception as e:
                self._counters["handler_errors"] += 1
                if span:
                    span.set_attribute(ATTR_HANDLER_SUCCESS, False)
                    span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                    span.record_exception(e)
                logger.error(
                    "Subscriber %s failed on %s: %s",
                    adapter.name,
                    type(event).__name__,
                    e,
                    exc_info=True,
                    extra={"handler": adapter.name, "event_id": str(event.event_id)},
                )
                return
            self._counters["handlers_invoked"] += 1
            if span:
                span.set_attribute(ATTR_HANDLER_SUCCESS, True)


__all__ = [
    "EventSubscriber",
    "InMemoryEventBus",
]
