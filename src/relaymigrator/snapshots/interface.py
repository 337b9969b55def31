"""
Snapshot store interface.

A snapshot is the serialized state of an engine as of one stream version.
Loading restores the snapshot and replays only the events after it, so the
work per call stays bounded while the stream keeps growing. Events remain
the source of truth: a snapshot may be deleted at any time and the next
load simply replays the whole stream.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID


@dataclass(frozen=True)
class Snapshot:
    """
    Point-in-time state of one aggregate.

    Attributes:
        aggregate_id: ID of the aggregate
        aggregate_type: Stream type name of the aggregate
        version: Stream version the state reflects; events up to and
            including this version are already applied
        state: JSON-compatible state from ``model_dump(mode="json")``
        schema_version: ``schema_version`` of the aggregate class that took it
        created_at: When the snapshot was taken
    """

    aggregate_id: UUID
    aggregate_type: str
    version: int
    state: dict[str, Any]
    schema_version: int
    created_at: datetime

    def __str__(self) -> str:
        return (
            f"Snapshot({self.aggregate_type}/{self.aggregate_id}, "
            f"v{self.version}, schema_v{self.schema_version})"
        )


class SnapshotStore(ABC):
    """
    Keeps the latest snapshot per (aggregate_id, aggregate_type).

    ``save_snapshot`` replaces whatever is stored for the aggregate.
    """

    @abstractmethod
    async def save_snapshot(self, snapshot: Snapshot) -> None: ...

    @abstractmethod
    async def get_snapshot(self, aggregate_id: UUID, aggregate_type: str) -> Snapshot | None: ...

    @abstractmethod
    async def delete_snapshot(self, aggregate_id: UUID, aggregate_type: str) -> bool:
        """Remove the snapshot; True if there was one."""

    async def snapshot_exists(self, aggregate_id: UUID, aggregate_type: str) -> bool:
        return await self.get_snapshot(aggregate_id, aggregate_type) is not None


__all__ = [
    "Snapshot",
    "SnapshotStore",
]
