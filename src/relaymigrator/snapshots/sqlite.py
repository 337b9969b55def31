"""
SQLite snapshot store.

Keeps the latest snapshot of each engine in an ``engine_snapshots`` table,
usually in the same database file as the ``engine_events`` table. The state
column holds the snapshot's JSON; ``INSERT OR REPLACE`` on the
(aggregate_id, aggregate_type) key gives upsert semantics. Built on
aiosqlite.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any
from uuid import UUID

import aiosqlite

from relaymigrator.observability import Tracer, create_tracer
from relaymigrator.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_VERSION,
)
from relaymigrator.snapshots.interface import Snapshot, SnapshotStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS engine_snapshots (
    aggregate_id TEXT NOT NULL,
    aggregate_type TEXT NOT NULL,
    version INTEGER NOT NULL,
    schema_version INTEGER NOT NULL,
    state TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (aggregate_id, aggregate_type)
);
"""


class SQLiteSnapshotStore(SnapshotStore):
    """
    Snapshot store backed by a SQLite database file.

    Example:
        >>> async with SQLiteEventStore("migration.db") as events, \\
        ...         SQLiteSnapshotStore("migration.db") as snapshots:
        ...     await events.initialize()
        ...     await snapshots.initialize()
        ...     engine = MigrationEngine(engine_id, events, ..., snapshot_store=snapshots)

    Args:
        database: File path, or ":memory:" for a throwaway database
        busy_timeout: Milliseconds to wait for another writer's lock
        tracer: Tracer to use; otherwise one is created from enable_tracing
        enable_tracing: Emit OpenTelemetry spans when no tracer is given
    """

    def __init__(
        self,
        database: str,
        *,
        busy_timeout: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._database = database
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def database(self) -> str:
        return self._database

    async def __aenter__(self) -> SQLiteSnapshotStore:
        await self._open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _open(self) -> aiosqlite.Connection:
        if self._connection is None:
            self._connection = await aiosqlite.connect(self._database)
            await self._connection.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout)}")
        return self._connection

    def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(
                f"SQLiteSnapshotStore({self._database!r}) is not open; "
                "use 'async with store:' or call initialize()"
            )
        return self._connection

    async def initialize(self) -> None:
        """Open the database if needed and create the table. Safe to repeat."""
        conn = await self._open()
        await conn.executescript(SCHEMA)
        await conn.commit()
        logger.info("Snapshot store ready: %s", self._database)

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def _span_attributes(self, aggregate_id: UUID, aggregate_type: str) -> dict[str, Any]:
        return {
            ATTR_AGGREGATE_ID: str(aggregate_id),
            ATTR_AGGREGATE_TYPE: aggregate_type,
            ATTR_DB_SYSTEM: "sqlite",
            ATTR_DB_NAME: self._database,
        }

    async def save_snapshot(self, snapshot: Snapshot) -> None:
        attributes = self._span_attributes(snapshot.aggregate_id, snapshot.aggregate_type)
        attributes[ATTR_VERSION] = snapshot.version
        with self._tracer.span("sqlite_snapshot_store.save", attributes):
            conn = self._conn()
            await conn.execute(
                """
                INSERT OR REPLACE INTO engine_snapshots (
                    aggregate_id, aggregate_type, version, schema_version, state, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    str(snapshot.aggregate_id),
                    snapshot.aggregate_type,
                    snapshot.version,
                    snapshot.schema_version,
                    json.dumps(snapshot.state),
                    snapshot.created_at.isoformat(),
                ),
            )
            await conn.commit()
            logger.debug("Saved %s", snapshot)

    async def get_snapshot(self, aggregate_id: UUID, aggregate_type: str) -> Snapshot | None:
        with self._tracer.span(
            "sqlite_snapshot_store.get",
            self._span_attributes(aggregate_id, aggregate_type),
        ):
            cursor = await self._conn().execute(
                """
                SELECT version, schema_version, state, created_at
                FROM engine_snapshots
                WHERE aggregate_id = ? AND aggregate_type = ?
                """,
                (str(aggregate_id), aggregate_type),
            )
            row = await cursor.fetchone()
            if row is None:
                return None

            version, schema_version, state, created_at = row
            return Snapshot(
                aggregate_id=aggregate_id,
                aggregate_type=aggregate_type,
                version=version,
                state=json.loads(state),
                schema_version=schema_version,
                created_at=datetime.fromisoformat(created_at),
            )

    async def delete_snapshot(self, aggregate_id: UUID, aggregate_type: str) -> bool:
        with self._tracer.span(
            "sqlite_snapshot_store.delete",
            self._span_attributes(aggregate_id, aggregate_type),
        ):
            conn = self._conn()
            cursor = await conn.execute(
                "DELETE FROM engine_snapshots WHERE aggregate_id = ? AND aggregate_type = ?",
                (str(aggregate_id), aggregate_type),
            )
            await conn.commit()
            return cursor.rowcount > 0


__all__ = [
    "SQLiteSnapshotStore",
]
