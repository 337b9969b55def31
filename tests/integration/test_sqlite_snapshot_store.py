"""
Integration tests for SQLiteSnapshotStore against a real database file.

Tests cover:
- Upsert, get and delete
- Engine state round trip, including the registered set
- A restarted engine resuming from snapshot plus tail
"""

from datetime import UTC, datetime
from uuid import uuid4

import pytest
import pytest_asyncio

from relaymigrator.engine import MigrationEngineConfig, ResourceBudget
from relaymigrator.events import ENGINE_AGGREGATE_TYPE
from relaymigrator.observability import ATTR_EVENTS_REPLAYED, ATTR_SNAPSHOT_USED, MockTracer
from relaymigrator.snapshots import Snapshot, SQLiteSnapshotStore
from relaymigrator.stores import SQLiteEventStore
from relaymigrator.testing import MigrationTestHarness

pytestmark = pytest.mark.sqlite

MARGIN = 91_000


def open_snapshots(path: str) -> SQLiteSnapshotStore:
    return SQLiteSnapshotStore(path, enable_tracing=False)


def open_events(path: str) -> SQLiteEventStore:
    return SQLiteEventStore(path, wal_mode=False, enable_tracing=False)


@pytest_asyncio.fixture
async def snapshots(tmp_path):
    store = open_snapshots(str(tmp_path / "snapshots.db"))
    await store.initialize()
    yield store
    await store.close()


def snapshot_at(aggregate_id, version: int, **state) -> Snapshot:
    return Snapshot(
        aggregate_id=aggregate_id,
        aggregate_type=ENGINE_AGGREGATE_TYPE,
        version=version,
        state=state,
        schema_version=1,
        created_at=datetime.now(UTC),
    )


class TestSQLiteSnapshotStore:
    @pytest.mark.asyncio
    async def test_get_missing(self, snapshots):
        assert await snapshots.get_snapshot(uuid4(), ENGINE_AGGREGATE_TYPE) is None

    @pytest.mark.asyncio
    async def test_upsert_keeps_latest(self, snapshots):
        aggregate_id = uuid4()
        await snapshots.save_snapshot(snapshot_at(aggregate_id, 20, migration_cursor=3))
        await snapshots.save_snapshot(snapshot_at(aggregate_id, 40, migration_cursor=9))

        snapshot = await snapshots.get_snapshot(aggregate_id, ENGINE_AGGREGATE_TYPE)

        assert snapshot is not None
        assert snapshot.version == 40
        assert snapshot.state == {"migration_cursor": 9}
        assert snapshot.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_delete(self, snapshots):
        aggregate_id = uuid4()
        await snapshots.save_snapshot(snapshot_at(aggregate_id, 20))

        assert await snapshots.delete_snapshot(aggregate_id, ENGINE_AGGREGATE_TYPE)
        assert not await snapshots.delete_snapshot(aggregate_id, ENGINE_AGGREGATE_TYPE)

    @pytest.mark.asyncio
    async def test_requires_open_connection(self, tmp_path):
        store = open_snapshots(str(tmp_path / "closed.db"))
        with pytest.raises(RuntimeError):
            await store.get_snapshot(uuid4(), ENGINE_AGGREGATE_TYPE)


@pytest.mark.asyncio
async def test_engine_state_survives_restart_through_snapshot(tmp_path):
    path = str(tmp_path / "engine.db")
    engine_id = uuid4()
    config = MigrationEngineConfig(snapshot_threshold=10)

    async with open_events(path) as events, open_snapshots(path) as snapshots:
        await events.initialize()
        await snapshots.initialize()
        harness = MigrationTestHarness(
            relay_count=12,
            config=config,
            event_store=events,
            engine_id=engine_id,
            snapshot_store=snapshots,
        )
        harness.fund(100)
        await harness.prepare_migration()
        progress = await harness.engine.run_migration_pass(ResourceBudget(MARGIN * 4))
        assert progress.cursor == 4
        before = await harness.engine.status()

        stored = await snapshots.get_snapshot(engine_id, ENGINE_AGGREGATE_TYPE)
        assert stored is not None
        assert sorted(stored.state["registered"]) == sorted(harness.relays)

    async with open_events(path) as events, open_snapshots(path) as snapshots:
        await events.initialize()
        await snapshots.initialize()
        tracer = MockTracer()
        engine = harness.build_engine(event_store=events, snapshot_store=snapshots, tracer=tracer)

        after = await engine.status()

        attributes = tracer.attributes_of("relaymigrator.repository.load")
        assert attributes[ATTR_SNAPSHOT_USED] is True
        assert attributes[ATTR_EVENTS_REPLAYED] < 10
        assert after == before

        progress = await engine.run_migration_pass()
        assert progress.completed
        assert (await engine.status()).transfers_succeeded == 24
