"""In-memory snapshot store, for tests and runs that keep everything in memory."""

from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from relaymigrator.observability import Tracer, create_tracer
from relaymigrator.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_VERSION,
)
from relaymigrator.snapshots.interface import Snapshot, SnapshotStore

logger = logging.getLogger(__name__)


class InMemorySnapshotStore(SnapshotStore):
    """
    Snapshots in a dict keyed by (aggregate_id, aggregate_type).

    Example:
        >>> snapshots = InMemorySnapshotStore()
        >>> engine = MigrationEngine(engine_id, store, ..., snapshot_store=snapshots)
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._snapshots: dict[tuple[UUID, str], Snapshot] = {}
        self._lock = asyncio.Lock()

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        with self._tracer.span(
            "inmemory_snapshot_store.save",
            {
                ATTR_AGGREGATE_ID: str(snapshot.aggregate_id),
                ATTR_AGGREGATE_TYPE: snapshot.aggregate_type,
                ATTR_VERSION: snapshot.version,
            },
        ):
            async with self._lock:
                self._snapshots[(snapshot.aggregate_id, snapshot.aggregate_type)] = snapshot
            logger.debug("Saved %s", snapshot)

    async def get_snapshot(self, aggregate_id: UUID, aggregate_type: str) -> Snapshot | None:
        with self._tracer.span(
            "inmemory_snapshot_store.get",
            {ATTR_AGGREGATE_ID: str(aggregate_id), ATTR_AGGREGATE_TYPE: aggregate_type},
        ):
            async with self._lock:
                return self._snapshots.get((aggregate_id, aggregate_type))

    async def delete_snapshot(self, aggregate_id: UUID, aggregate_type: str) -> bool:
        async with self._lock:
            return self._snapshots.pop((aggregate_id, aggregate_type), None) is not None

    # Test helpers

    @property
    def snapshot_count(self) -> int:
        return len(self._snapshots)

    async def clear(self) -> None:
        async with self._lock:
            self._snapshots.clear()


__all__ = [
    "InMemorySnapshotStore",
]
