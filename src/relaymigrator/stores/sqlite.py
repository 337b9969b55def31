"""
SQLite event store.

The durable store for migration runs: an engine whose events live in a
SQLite file can be rebuilt by a later process and carries on from the
committed cursor. Built on aiosqlite.

Layout: one ``engine_events`` table. UUIDs and timestamps are TEXT, the
event body is the JSON of ``DomainEvent.to_dict()``, and the autoincrement
``position`` column is the global order used by ``read_all``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import aiosqlite

from relaymigrator.events.base import DomainEvent
from relaymigrator.events.registry import EventRegistry, default_registry
from relaymigrator.exceptions import OptimisticLockError
from relaymigrator.observability import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_EVENT_COUNT,
    ATTR_EVENT_TYPE,
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

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS engine_events (
    position INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id TEXT NOT NULL UNIQUE,
    event_type TEXT NOT NULL,
    aggregate_id TEXT NOT NULL,
    aggregate_type TEXT NOT NULL,
    version INTEGER NOT NULL,
    actor_id TEXT,
    correlation_id TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    stored_at TEXT NOT NULL,
    body TEXT NOT NULL,
    UNIQUE (aggregate_id, aggregate_type, version)
);

CREATE INDEX IF NOT EXISTS idx_engine_events_correlation
    ON engine_events (correlation_id);
"""

_SELECT_STORED = """
    SELECT event_type, body, position, aggregate_id, aggregate_type, version, stored_at
    FROM engine_events
"""


class SQLiteEventStore(EventStore):
    """
    Event store backed by one SQLite database file.

    Appends run inside ``BEGIN IMMEDIATE`` so the version check and the
    inserts hold the database write lock together; a second process
    appending to the same stream either waits or fails the version check.

    Example:
        >>> async with SQLiteEventStore("migration.db") as store:
        ...     await store.initialize()
        ...     engine = MigrationEngine(engine_id, store, ...)
        ...     await engine.run_migration_pass(ResourceBudget(2_000_000))

    Args:
        database: File path, or ":memory:" for a throwaway database
        event_registry: Registry used to rebuild events (default registry if None)
        wal_mode: Switch the database to write-ahead logging on connect
        busy_timeout: Milliseconds to wait for another writer's lock
        tracer: Tracer to use; otherwise one is created from enable_tracing
        enable_tracing: Emit OpenTelemetry spans when no tracer is given
    """

    def __init__(
        self,
        database: str,
        event_registry: EventRegistry | None = None,
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._database = database
        self._registry = default_registry if event_registry is None else event_registry
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._connection: aiosqlite.Connection | None = None
        # One transaction at a time on the shared connection
        self._write_lock = asyncio.Lock()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def database(self) -> str:
        return self._database

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def __aenter__(self) -> SQLiteEventStore:
        await self._open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _open(self) -> aiosqlite.Connection:
        if self._connection is None:
            self._connection = await aiosqlite.connect(self._database)
            await self._connection.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout)}")
            if self._wal_mode:
                await self._connection.execute("PRAGMA journal_mode = WAL")
            logger.debug("Opened %s (wal_mode=%s)", self._database, self._wal_mode)
        return self._connection

    def _conn(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(
                f"SQLiteEventStore({self._database!r}) is not open; "
                "use 'async with store:' or call initialize()"
            )
        return self._connection

    async def initialize(self) -> None:
        """Open the database if needed and create the table. Safe to repeat."""
        conn = await self._open()
        await conn.executescript(SCHEMA)
        await conn.commit()
        logger.info("Event store ready: %s", self._database)

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed %s", self._database)

    async def append_events(
        self,
        aggregate_id: UUID,
        aggregate_type: str,
        events: list[DomainEvent],
        expected_version: int,
    ) -> AppendResult:
        if not events:
            return AppendResult.successful(expected_version)

        with self._tracer.span(
            "sqlite_event_store.append_events",
            {
                ATTR_AGGREGATE_ID: str(aggregate_id),
                ATTR_AGGREGATE_TYPE: aggregate_type,
                ATTR_EVENT_COUNT: len(events),
                ATTR_EXPECTED_VERSION: expected_version,
                ATTR_EVENT_TYPE: ",".join(sorted({e.event_type for e in events})),
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_DB_NAME: self._database,
            },
        ):
            conn = self._conn()
            async with self._write_lock:
                await conn.execute("BEGIN IMMEDIATE")
                try:
                    result = await self._append_locked(
                        conn, aggregate_id, aggregate_type, events, expected_version
                    )
                except aiosqlite.IntegrityError as e:
                    await conn.rollback()
                    actual = await self._stream_version(conn, aggregate_id, aggregate_type)
                    raise OptimisticLockError(aggregate_id, expected_version, actual) from e
                except Exception:
                    await conn.rollback()
                    raise
                await conn.commit()
                return result

    async def _append_locked(
        self,
        conn: aiosqlite.Connection,
        aggregate_id: UUID,
        aggregate_type: str,
        events: Sequence[DomainEvent],
        expected_version: int,
    ) -> AppendResult:
        version = await self._stream_version(conn, aggregate_id, aggregate_type)
        check_expected_version(aggregate_id, expected_version, version)

        known = await self._existing_ids(conn, [e.event_id for e in events])
        stored_at = datetime.now(UTC).isoformat()
        position = 0
        for event in events:
            if event.event_id in known:
                logger.debug("Skipping already stored event %s", event.event_id)
                continue
            version += 1
            cursor = await conn.execute(
                """
                INSERT INTO engine_events (
                    event_id, event_type, aggregate_id, aggregate_type, version,
                    actor_id, correlation_id, occurred_at, stored_at, body
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(event.event_id),
                    event.event_type,
                    str(aggregate_id),
                    aggregate_type,
                    version,
                    event.actor_id,
                    str(event.correlation_id),
                    event.occurred_at.isoformat(),
                    stored_at,
                    json.dumps(event.to_dict()),
                ),
            )
            position = cursor.lastrowid or position

        logger.debug(
            "Appended to %s %s, now at version %d",
            aggregate_type,
            aggregate_id,
            version,
        )
        return AppendResult.successful(version, position)

    async def _existing_ids(self, conn: aiosqlite.Connection, event_ids: list[UUID]) -> set[UUID]:
        placeholders = ", ".join("?" for _ in event_ids)
        cursor = await conn.execute(
            f"SELECT event_id FROM engine_events WHERE event_id IN ({placeholders})",
            [str(event_id) for event_id in event_ids],
        )
        return {UUID(row[0]) for row in await cursor.fetchall()}

    async def _stream_version(
        self,
        conn: aiosqlite.Connection,
        aggregate_id: UUID,
        aggregate_type: str,
    ) -> int:
        cursor = await conn.execute(
            "SELECT COALESCE(MAX(version), 0) FROM engine_events "
            "WHERE aggregate_id = ? AND aggregate_type = ?",
            (str(aggregate_id), aggregate_type),
        )
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def get_events(
        self,
        aggregate_id: UUID,
        aggregate_type: str | None = None,
        from_version: int = 0,
    ) -> EventStream:
        with self._tracer.span(
            "sqlite_event_store.get_events",
            {
                ATTR_AGGREGATE_ID: str(aggregate_id),
                ATTR_AGGREGATE_TYPE: aggregate_type or "any",
                ATTR_FROM_VERSION: from_version,
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_DB_NAME: self._database,
            },
        ):
            conn = self._conn()
            query = _SELECT_STORED + " WHERE aggregate_id = ? AND version > ?"
            params: list[Any] = [str(aggregate_id), from_version]
            if aggregate_type is not None:
                query += " AND aggregate_type = ?"
                params.append(aggregate_type)
            cursor = await conn.execute(query + " ORDER BY version", params)
            rows = list(await cursor.fetchall())

            if rows:
                resolved_type, version = rows[-1][4], rows[-1][5]
            elif aggregate_type is not None:
                resolved_type = aggregate_type
                version = await self._stream_version(conn, aggregate_id, aggregate_type)
            else:
                resolved_type, version = "Unknown", from_version

            return EventStream(
                aggregate_id=aggregate_id,
                aggregate_type=resolved_type,
                events=[self._decode(row[0], row[1]) for row in rows],
                version=version,
            )

    async def get_stream_version(self, aggregate_id: UUID, aggregate_type: str) -> int:
        return await self._stream_version(self._conn(), aggregate_id, aggregate_type)

    async def event_exists(self, event_id: UUID) -> bool:
        return bool(await self._existing_ids(self._conn(), [event_id]))

    async def read_all(self, from_position: int = 0) -> AsyncIterator[StoredEvent]:
        cursor = await self._conn().execute(
            _SELECT_STORED + " WHERE position > ? ORDER BY position",
            (from_position,),
        )
        for row in await cursor.fetchall():
            event_type, body, position, aggregate_id, aggregate_type, version, stored_at = row
            yield StoredEvent(
                event=self._decode(event_type, body),
                stream_id=f"{aggregate_id}:{aggregate_type}",
                stream_position=version,
                global_position=position,
                stored_at=datetime.fromisoformat(stored_at),
            )

    async def get_global_position(self) -> int:
        cursor = await self._conn().execute("SELECT COALESCE(MAX(position), 0) FROM engine_events")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    def _decode(self, event_type: str, body: str) -> DomainEvent:
        """
        Raises:
            EventTypeNotFoundError: If ``event_type`` is not in the registry
        """
        return self._registry.get(event_type).model_validate(json.loads(body))


__all__ = [
    "SCHEMA",
    "SQLiteEventStore",
]
