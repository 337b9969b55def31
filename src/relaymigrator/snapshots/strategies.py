"""
When the repository takes snapshots.

``ThresholdSnapshotStrategy`` snapshots after any save that carries the
stream across a multiple of the threshold. One engine call can append many
events at once, so the check compares the versions before and after the
save rather than testing the new version alone.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from relaymigrator.snapshots.interface import Snapshot, SnapshotStore

if TYPE_CHECKING:
    from relaymigrator.aggregates.base import AggregateRoot

logger = logging.getLogger(__name__)


@runtime_checkable
class SnapshotStrategy(Protocol):
    def should_snapshot(self, aggregate: AggregateRoot[Any], previous_version: int) -> bool: ...

    async def execute_snapshot(
        self,
        aggregate: AggregateRoot[Any],
        snapshot_store: SnapshotStore,
        aggregate_type: str,
    ) -> Snapshot | None: ...


class ThresholdSnapshotStrategy:
    """
    Take a snapshot every ``threshold`` events, synchronously after the save.

    A failed snapshot is logged and skipped; it never fails the save, since
    the events are already committed.

    Raises:
        ValueError: If threshold is below 1
    """

    def __init__(self, threshold: int) -> None:
        if threshold < 1:
            raise ValueError(f"snapshot threshold must be >= 1, got {threshold}")
        self._threshold = threshold

    @property
    def threshold(self) -> int:
        return self._threshold

    def should_snapshot(self, aggregate: AggregateRoot[Any], previous_version: int) -> bool:
        return aggregate.version // self._threshold > previous_version // self._threshold

    async def execute_snapshot(
        self,
        aggregate: AggregateRoot[Any],
        snapshot_store: SnapshotStore,
        aggregate_type: str,
    ) -> Snapshot | None:
        try:
            return await take_snapshot(aggregate, snapshot_store, aggregate_type)
        except Exception as e:
            logger.warning(
                "Failed to create snapshot for %s/%s: %s",
                aggregate_type,
                aggregate.aggregate_id,
                e,
                exc_info=True,
                extra={"aggregate_id": str(aggregate.aggregate_id)},
            )
            return None


async def take_snapshot(
    aggregate: AggregateRoot[Any],
    snapshot_store: SnapshotStore,
    aggregate_type: str,
) -> Snapshot:
    """Serialize ``aggregate`` at its current version and save it."""
    snapshot = Snapshot(
        aggregate_id=aggregate.aggregate_id,
        aggregate_type=aggregate_type,
        version=aggregate.version,
        state=aggregate._serialize_state(),
        schema_version=type(aggregate).schema_version,
        created_at=datetime.now(UTC),
    )
    await snapshot_store.save_snapshot(snapshot)
    logger.info(
        "Created snapshot for %s/%s at version %d (schema_version=%d)",
        aggregate_type,
        aggregate.aggregate_id,
        snapshot.version,
        snapshot.schema_version,
        extra={"aggregate_id": str(aggregate.aggregate_id), "version": snapshot.version},
    )
    return snapshot


__all__ = [
    "SnapshotStrategy",
    "ThresholdSnapshotStrategy",
    "take_snapshot",
]
