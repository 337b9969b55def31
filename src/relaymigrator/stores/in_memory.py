"""
In-memory event store.

Everything lives in process memory and is gone when the process exits. Used
by the test harness and by runs that do not need to survive a restart.
"""

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from uuid import UUID

from relaymigrator.events.base import DomainEvent
from relaymigrator.observability import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_EVENT_COUNT,
    ATTR_EXPECTED_VERSION,
    ATTR_FROM_VERSION,
    Tracer,
    create_tracer,
)
from relaymigrator.stores.interface import (
    AppendResult,
    EventStore,
    EventStream,
    StoredEvent,
    check_expected_version,
)


class InMemoryEventStore(EventStore):
    """
    Event store kept in a single global list.

    Each stream is the subsequence of the global log with its stream ID, so
    the version of a stream is the number of its entries. An asyncio.Lock
    makes appends atomic between tasks of one event loop.

    Example:
        >>> store = InMemoryEventStore()
        >>> engine = MigrationEngine(engine_id, store, ...)
        >>> await engine.initialize(administrator)
        >>> await store.get_event_count()
        1
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._log: list[StoredEvent] = []
        self._streams: dict[str, list[StoredEvent]] = {}
        self._event_ids: set[UUID] = set()
        self._lock = asyncio.Lock()

    @staticmethod
    def _stream_id(aggregate_id: UUID, aggregate_type: str) -> str:
        return f"{aggregate_id}:{aggregate_type}"

    async def append_events(
        self,
        aggregate_id: UUID,
        aggregate_type: str,
        events: list[DomainEvent],
        expected_version: int,
    ) -> AppendResult:
        if not events:
            return AppendResult.successful(expected_version)

        stream_id = self._stream_id(aggregate_id, aggregate_type)
        with self._tracer.span(
            "inmemory_event_store.append_events",
            {
                ATTR_AGGREGATE_ID: str(aggregate_id),
                ATTR_AGGREGATE_TYPE: aggregate_type,
                ATTR_EVENT_COUNT: len(events),
                ATTR_EXPECTED_VERSION: expected_version,
            },
        ):
            async with self._lock:
                stream = self._streams.setdefault(stream_id, [])
                check_expected_version(aggregate_id, expected_version, len(stream))

                stored_at = datetime.now(UTC)
                for event in events:
                    if event.event_id in self._event_ids:
                        continue
                    stored = StoredEvent(
                        event=event,
                        stream_id=stream_id,
                        stream_position=len(stream) + 1,
                        global_position=len(self._log) + 1,
                        stored_at=stored_at,
                    )
                    stream.append(stored)
                    self._log.append(stored)
                    self._event_ids.add(event.event_id)

                return AppendResult.successful(len(stream), len(self._log))

    async def get_events(
        self,
        aggregate_id: UUID,
        aggregate_type: str | None = None,
        from_version: int = 0,
    ) -> EventStream:
        with self._tracer.span(
            "inmemory_event_store.get_events",
            {
                ATTR_AGGREGATE_ID: str(aggregate_id),
                ATTR_AGGREGATE_TYPE: aggregate_type or "any",
                ATTR_FROM_VERSION: from_version,
            },
        ):
            async with self._lock:
                if aggregate_type is None:
                    # First stream of this aggregate that has any events
                    prefix = f"{aggregate_id}:"
                    candidates = (
                        sid for sid, entries in self._streams.items()
                        if entries and sid.startswith(prefix)
                    )
                    stream_id = next(candidates, None)
                    aggregate_type = stream_id[len(prefix):] if stream_id else "Unknown"
                stream = self._streams.get(self._stream_id(aggregate_id, aggregate_type), [])

                return EventStream(
                    aggregate_id=aggregate_id,
                    aggregate_type=aggregate_type,
                    events=[stored.event for stored in stream[from_version:]],
                    version=len(stream),
                )

    async def event_exists(self, event_id: UUID) -> bool:
        async with self._lock:
            return event_id in self._event_ids

    async def read_all(self, from_position: int = 0) -> AsyncIterator[StoredEvent]:
        async with self._lock:
            entries = self._log[from_position:]
        for stored in entries:
            yield stored

    async def get_global_position(self) -> int:
        return len(self._log)

    # Test helpers

    async def get_all_events(self) -> list[DomainEvent]:
        """Every event of every stream, in append order."""
        async with self._lock:
            return [stored.event for stored in self._log]

    async def get_event_count(self) -> int:
        return len(self._log)

    async def clear(self) -> None:
        async with self._lock:
            self._log.clear()
            self._streams.clear()
            self._event_ids.clear()
