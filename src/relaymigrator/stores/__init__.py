"""Event store implementations."""

from relaymigrator.stores.in_memory import InMemoryEventStore
from relaymigrator.stores.interface import (
    AppendResult,
    EventPublisher,
    EventStore,
    EventStream,
    ExpectedVersion,
    StoredEvent,
)
from relaymigrator.stores.sqlite import SQLiteEventStore

__all__ = [
    "AppendResult",
    "EventPublisher",
    "EventStore",
    "EventStream",
    "ExpectedVersion",
    "InMemoryEventStore",
    "SQLiteEventStore",
    "StoredEvent",
]
