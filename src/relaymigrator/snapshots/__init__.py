"""
Snapshots of aggregate state.

With a snapshot store, the repository loads an engine from its latest
snapshot plus the events after it instead of from the whole stream.

Example:
    >>> engine = MigrationEngine(
    ...     engine_id,
    ...     store,
    ...     ...,
    ...     config=MigrationEngineConfig(snapshot_threshold=100),
    ...     snapshot_store=InMemorySnapshotStore(),
    ... )
"""

from relaymigrator.snapshots.in_memory import InMemorySnapshotStore
from relaymigrator.snapshots.interface import Snapshot, SnapshotStore
from relaymigrator.snapshots.sqlite import SQLiteSnapshotStore
from relaymigrator.snapshots.strategies import (
    SnapshotStrategy,
    ThresholdSnapshotStrategy,
    take_snapshot,
)

__all__ = [
    "InMemorySnapshotStore",
    "SQLiteSnapshotStore",
    "Snapshot",
    "SnapshotStore",
    "SnapshotStrategy",
    "ThresholdSnapshotStrategy",
    "take_snapshot",
]
