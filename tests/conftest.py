"""
Shared pytest fixtures for the relaymigrator tests.

This module provides:
- Sample data fixtures (engine_id, administrator, relays)
- Event store fixtures (in_memory_store, sqlite_event_store)
- Collaborator fixtures (ledgers, factory, key directory, inspector)
- Engine fixtures (harness, engine, prepared engines per phase)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

from relaymigrator.engine import MigrationEngine, ResourceBudget
from relaymigrator.stores.in_memory import InMemoryEventStore
from relaymigrator.stores.sqlite import SQLiteEventStore
from relaymigrator.testing import (
    InMemoryLedger,
    MigrationTestHarness,
    MutableKeyDirectory,
    SequentialEntityFactory,
    StaticContractInspector,
    relay_address,
)

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def engine_id() -> UUID:
    return uuid4()


@pytest.fixture
def relays() -> list[str]:
    """Three checksummed relay addresses."""
    return [relay_address(n) for n in range(1, 4)]


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def in_memory_store() -> InMemoryEventStore:
    return InMemoryEventStore(enable_tracing=False)


@pytest_asyncio.fixture
async def sqlite_event_store(tmp_path) -> AsyncGenerator[SQLiteEventStore, None]:
    """
    Provide an initialized file-backed SQLite store.

    The database file lives in the test's tmp_path so the store can be
    reopened by tests that simulate a restart.
    """
    store = SQLiteEventStore(str(tmp_path / "events.db"), wal_mode=False, enable_tracing=False)
    await store.initialize()
    yield store
    await store.close()


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def usdc() -> InMemoryLedger:
    return InMemoryLedger("usdc")


@pytest.fixture
def weth() -> InMemoryLedger:
    return InMemoryLedger("weth")


@pytest.fixture
def factory() -> SequentialEntityFactory:
    return SequentialEntityFactory()


@pytest.fixture
def key_directory() -> MutableKeyDirectory:
    return MutableKeyDirectory("key-1")


@pytest.fixture
def inspector(relays: list[str]) -> StaticContractInspector:
    return StaticContractInspector(relays)


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def harness() -> MigrationTestHarness:
    """A harness with three relays and the usdc and weth ledgers."""
    return MigrationTestHarness(relay_count=3)


@pytest.fixture
def engine(harness: MigrationTestHarness) -> MigrationEngine:
    return harness.engine


@pytest.fixture
def admin(harness: MigrationTestHarness) -> str:
    return harness.administrator


@pytest_asyncio.fixture
async def initialized_engine(harness: MigrationTestHarness) -> MigrationEngine:
    await harness.engine.initialize(harness.administrator)
    return harness.engine


@pytest_asyncio.fixture
async def deploying_engine(harness: MigrationTestHarness) -> MigrationEngine:
    """Engine with every relay registered and registration closed."""
    await harness.prepare_deployment()
    return harness.engine


@pytest_asyncio.fixture
async def approval_engine(harness: MigrationTestHarness) -> MigrationEngine:
    """Engine with every successor deployed, migration not yet started."""
    await harness.prepare_deployment()
    await harness.engine.deploy_successors(ResourceBudget.unlimited())
    return harness.engine


@pytest_asyncio.fixture
async def migrating_engine(harness: MigrationTestHarness) -> MigrationEngine:
    """Engine in the migration phase, no pass run yet."""
    await harness.prepare_migration()
    return harness.engine
