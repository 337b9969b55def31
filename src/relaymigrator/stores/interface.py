"""
What the engine needs from an event store.

An engine's stream is its only durable state, and each engine call commits
through exactly one ``append_events``. Stores therefore promise two things:
an append is all-or-nothing, and it is rejected when the stream is not at
the version the caller loaded.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import UUID

from relaymigrator.events.base import DomainEvent
from relaymigrator.exceptions import OptimisticLockError


@dataclass(frozen=True)
class EventStream:
    """The events of one aggregate after ``from_version``, and its current version."""

    aggregate_id: UUID
    aggregate_type: str
    events: list[DomainEvent] = field(default_factory=list)
    version: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.events

    @property
    def latest_event(self) -> DomainEvent | None:
        return self.events[-1] if self.events else None


@dataclass(frozen=True)
class StoredEvent:
    """
    An event as read back from the global log.

    Positions are 1-based. ``stream_id`` is "<aggregate_id>:<aggregate_type>".
    """

    event: DomainEvent
    stream_id: str
    stream_position: int
    global_position: int
    stored_at: datetime

    @property
    def event_type(self) -> str:
        return self.event.event_type

    @property
    def aggregate_id(self) -> UUID:
        return self.event.aggregate_id


@dataclass(frozen=True)
class AppendResult:
    success: bool
    new_version: int
    global_position: int = 0

    @classmethod
    def successful(cls, new_version: int, global_position: int = 0) -> "AppendResult":
        return cls(True, new_version, global_position)


class ExpectedVersion:
    """Sentinel values for ``expected_version``; any value >= 0 is an exact version."""

    ANY = -1
    NO_STREAM = 0
    STREAM_EXISTS = -2


def check_expected_version(aggregate_id: UUID, expected_version: int, current_version: int) -> None:
    """
    Raises:
        OptimisticLockError: If ``current_version`` does not satisfy ``expected_version``
    """
    if expected_version == ExpectedVersion.ANY:
        ok = True
    elif expected_version == ExpectedVersion.STREAM_EXISTS:
        ok = current_version > 0
    else:
        ok = current_version == expected_version
    if not ok:
        raise OptimisticLockError(aggregate_id, expected_version, current_version)


class EventStore(ABC):
    """
    Base class for event stores.

    Implementations: InMemoryEventStore (tests, single process) and
    SQLiteEventStore (durable, resumable across restarts).
    """

    @abstractmethod
    async def append_events(
        self,
        aggregate_id: UUID,
        aggregate_type: str,
        events: list[DomainEvent],
        expected_version: int,
    ) -> AppendResult:
        """
        Append ``events`` to the stream atomically.

        Events whose ID is already stored are skipped.

        Raises:
            OptimisticLockError: If the stream is not at ``expected_version``
        """

    @abstractmethod
    async def get_events(
        self,
        aggregate_id: UUID,
        aggregate_type: str | None = None,
        from_version: int = 0,
    ) -> EventStream:
        """Events with a version above ``from_version``, oldest first."""

    @abstractmethod
    async def event_exists(self, event_id: UUID) -> bool: ...

    async def get_stream_version(self, aggregate_id: UUID, aggregate_type: str) -> int:
        """Current stream version (0 when the stream does not exist)."""
        return (await self.get_events(aggregate_id, aggregate_type)).version

    @abstractmethod
    def read_all(self, from_position: int = 0) -> AsyncIterator[StoredEvent]:
        """Every stored event after ``from_position``, in global order."""

    @abstractmethod
    async def get_global_position(self) -> int:
        """Global position of the newest event, or 0."""


class EventPublisher(Protocol):
    """Receives the events of each successful save, in order."""

    async def publish(self, events: list[DomainEvent]) -> None: ...


__all__ = [
    "AppendResult",
    "EventPublisher",
    "EventStore",
    "EventStream",
    "ExpectedVersion",
    "StoredEvent",
    "check_expected_version",
]
