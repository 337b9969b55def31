"""
Aggregate repository.

Loads an aggregate by replaying its stream, or from its latest snapshot and
the events after it when a snapshot store is configured, and saves it by
appending the events it raised since it was loaded. The append is guarded by
the stream version the aggregate was loaded at, so two writers that loaded
the same version cannot both commit. Committed events go to the publisher
afterwards.
"""

import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar
from uuid import UUID

from relaymigrator.aggregates.base import AggregateRoot
from relaymigrator.exceptions import AggregateNotFoundError, OptimisticLockError
from relaymigrator.observability import Tracer, create_tracer
from relaymigrator.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_ERROR_TYPE,
    ATTR_EVENT_COUNT,
    ATTR_EVENTS_REPLAYED,
    ATTR_EXPECTED_VERSION,
    ATTR_SNAPSHOT_USED,
    ATTR_SNAPSHOT_VERSION,
    ATTR_VERSION,
)
from relaymigrator.snapshots.interface import Snapshot, SnapshotStore
from relaymigrator.snapshots.strategies import ThresholdSnapshotStrategy, take_snapshot
from relaymigrator.stores.interface import EventPublisher, EventStore

logger = logging.getLogger(__name__)

TAggregate = TypeVar("TAggregate", bound="AggregateRoot[Any]")


class AggregateRepository(Generic[TAggregate]):
    """
    Loads and saves aggregates of one type.

    Args:
        event_store: Where the streams live
        aggregate_factory: Builds an empty aggregate from its ID
        aggregate_type: Stream type name used for every read and append
        event_publisher: Receives the events of every successful save
        snapshot_store: Enables loading from snapshot plus tail
        snapshot_threshold: Take a snapshot every this many events; with
            None, snapshots are only taken by create_snapshot()
        tracer: Tracer to use; otherwise one is created from enable_tracing
        enable_tracing: Emit OpenTelemetry spans when no tracer is given

    Example:
        >>> repository = AggregateRepository(
        ...     event_store=store,
        ...     aggregate_factory=MigrationAggregate,
        ...     aggregate_type="MigrationEngine",
        ...     event_publisher=bus,
        ... )
        >>> aggregate = await repository.load(engine_id)
        >>> aggregate.start_migration()
        >>> await repository.save(aggregate)
    """

    def __init__(
        self,
        event_store: EventStore,
        aggregate_factory: Callable[[UUID], TAggregate],
        aggregate_type: str,
        event_publisher: EventPublisher | None = None,
        *,
        snapshot_store: SnapshotStore | None = None,
        snapshot_threshold: int | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._event_store = event_store
        self._aggregate_factory = aggregate_factory
        self._aggregate_type = aggregate_type
        self._event_publisher = event_publisher
        self._snapshot_store = snapshot_store
        self._snapshot_strategy: ThresholdSnapshotStrategy | None = None
        if snapshot_store is not None and snapshot_threshold is not None:
            self._snapshot_strategy = ThresholdSnapshotStrategy(snapshot_threshold)
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def aggregate_type(self) -> str:
        return self._aggregate_type

    @property
    def event_store(self) -> EventStore:
        return self._event_store

    @property
    def event_publisher(self) -> EventPublisher | None:
        return self._event_publisher

    @property
    def snapshot_store(self) -> SnapshotStore | None:
        return self._snapshot_store

    @property
    def snapshot_threshold(self) -> int | None:
        if self._snapshot_strategy is None:
            return None
        return self._snapshot_strategy.threshold

    def create_new(self, aggregate_id: UUID) -> TAggregate:
        """An empty aggregate; nothing is stored until it raises events and is saved."""
        return self._aggregate_factory(aggregate_id)

    async def exists(self, aggregate_id: UUID) -> bool:
        return await self._event_store.get_stream_version(aggregate_id, self._aggregate_type) > 0

    async def load(self, aggregate_id: UUID) -> TAggregate:
        """
        Rebuild an aggregate from its latest snapshot and the events after it.

        Without a usable snapshot the whole stream is replayed. A snapshot
        is unusable when it cannot be read, was taken under another
        schema_version, is ahead of the stream, or does not fit the state
        model.

        Raises:
            AggregateNotFoundError: If the stream is empty
        """
        with self._tracer.span(
            "relaymigrator.repository.load",
            {ATTR_AGGREGATE_ID: str(aggregate_id), ATTR_AGGREGATE_TYPE: self._aggregate_type},
        ) as span:
            snapshot = await self._usable_snapshot(aggregate_id)
            from_version = snapshot.version if snapshot is not None else 0
            stream = await self._event_store.get_events(
                aggregate_id, self._aggregate_type, from_version
            )

            aggregate = self.create_new(aggregate_id)
            if snapshot is not None:
                if stream.version < snapshot.version:
                    logger.warning(
                        "Ignoring %s: stream %s is only at version %d",
                        snapshot,
                        aggregate_id,
                        stream.version,
                        extra={"aggregate_id": str(aggregate_id)},
                    )
                    snapshot = None
                else:
                    try:
                        aggregate._restore_from_snapshot(snapshot.state, snapshot.version)
                    except Exception as e:
                        logger.warning(
                            "Cannot restore %s, replaying the full stream: %s",
                            snapshot,
                            e,
                            extra={"aggregate_id": str(aggregate_id)},
                        )
                        snapshot = None
                        aggregate = self.create_new(aggregate_id)
                if snapshot is None:
                    stream = await self._event_store.get_events(aggregate_id, self._aggregate_type)

            if snapshot is None and stream.is_empty:
                raise AggregateNotFoundError(aggregate_id, self._aggregate_type)

            aggregate.load_from_history(stream.events)
            if span:
                span.set_attribute(ATTR_VERSION, aggregate.version)
                span.set_attribute(ATTR_EVENT_COUNT, len(stream.events))
                span.set_attribute(ATTR_EVENTS_REPLAYED, len(stream.events))
                span.set_attribute(ATTR_SNAPSHOT_USED, snapshot is not None)
                if snapshot is not None:
                    span.set_attribute(ATTR_SNAPSHOT_VERSION, snapshot.version)
            return aggregate

    async def _usable_snapshot(self, aggregate_id: UUID) -> Snapshot | None:
        if self._snapshot_store is None:
            return None
        try:
            snapshot = await self._snapshot_store.get_snapshot(aggregate_id, self._aggregate_type)
        except Exception as e:
            logger.warning(
                "Snapshot store failed for %s %s, replaying the full stream: %s",
                self._aggregate_type,
                aggregate_id,
                e,
                extra={"aggregate_id": str(aggregate_id)},
            )
            return None
        if snapshot is None:
            return None

        expected = self._aggregate_factory(aggregate_id).schema_version
        if snapshot.schema_version != expected:
            logger.info(
                "Ignoring %s: aggregate schema is now v%d",
                snapshot,
                expected,
                extra={"aggregate_id": str(aggregate_id)},
            )
            return None
        return snapshot

    async def create_snapshot(self, aggregate: TAggregate) -> Snapshot:
        """
        Snapshot ``aggregate`` now, whatever the threshold.

        Raises:
            RuntimeError: If no snapshot store is configured
        """
        if self._snapshot_store is None:
            raise RuntimeError("create_snapshot() needs a snapshot store")
        return await take_snapshot(aggregate, self._snapshot_store, self._aggregate_type)

    async def save(self, aggregate: TAggregate) -> int:
        """
        Append the aggregate's pending events, then publish them.

        Returns:
            The stream version after the save (unchanged when nothing was pending)

        Raises:
            OptimisticLockError: If the stream moved past the version the
                aggregate was loaded at; the aggregate keeps its pending events
        """
        pending = aggregate.uncommitted_events
        if not pending:
            return aggregate.version

        loaded_at = aggregate.version - len(pending)
        with self._tracer.span(
            "relaymigrator.repository.save",
            {
                ATTR_AGGREGATE_ID: str(aggregate.aggregate_id),
                ATTR_AGGREGATE_TYPE: self._aggregate_type,
                ATTR_EVENT_COUNT: len(pending),
                ATTR_EXPECTED_VERSION: loaded_at,
            },
        ) as span:
            try:
                result = await self._event_store.append_events(
                    aggregate_id=aggregate.aggregate_id,
                    aggregate_type=self._aggregate_type,
                    events=pending,
                    expected_version=loaded_at,
                )
            except OptimisticLockError as e:
                if span:
                    span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                    span.record_exception(e)
                logger.warning(
                    "Concurrent write to %s %s: loaded at %d, stream at %d",
                    self._aggregate_type,
                    aggregate.aggregate_id,
                    loaded_at,
                    e.actual_version,
                    extra={
                        "aggregate_id": str(aggregate.aggregate_id),
                        "expected_version": loaded_at,
                        "actual_version": e.actual_version,
                    },
                )
                raise

            aggregate.mark_events_as_committed()
            if span:
                span.set_attribute(ATTR_VERSION, result.new_version)
            logger.debug(
                "Saved %d event(s) to %s %s (version %d)",
                len(pending),
                self._aggregate_type,
                aggregate.aggregate_id,
                result.new_version,
            )

            if self._snapshot_strategy is not None and self._snapshot_store is not None:
                if self._snapshot_strategy.should_snapshot(aggregate, loaded_at):
                    await self._snapshot_strategy.execute_snapshot(
                        aggregate, self._snapshot_store, self._aggregate_type
                    )

            if self._event_publisher is not None:
                await self._event_publisher.publish(pending)
            return result.new_version


__all__ = [
    "AggregateRepository",
    "TAggregate",
]
