"""
Resumable Migration Example

Persists the engine in a SQLite file and splits a migration pass across
separate "processes" (store connections). The second connection picks up
at the cursor saved by the first.

Run with: python examples/resumable_sqlite.py
"""

import asyncio
import tempfile
from pathlib import Path
from uuid import uuid4

from relaymigrator import MigrationEngine, ResourceBudget, SQLiteEventStore
from relaymigrator.testing import (
    InMemoryLedger,
    MutableKeyDirectory,
    SequentialEntityFactory,
    StaticContractInspector,
    relay_address,
)

ADMIN = "0x" + "ad" * 20


def build_engine(engine_id, store, collaborators):
    return MigrationEngine(engine_id, store, **collaborators)


async def main():
    relays = [relay_address(n) for n in range(1, 11)]
    usdc = InMemoryLedger("usdc")
    for relay in relays:
        usdc.credit(relay, 250)
        usdc.approve(relay)

    collaborators = {
        "factory": SequentialEntityFactory(),
        "key_directory": MutableKeyDirectory("wallet-key-1"),
        "ledgers": {"usdc": usdc},
        "inspector": StaticContractInspector(relays),
    }
    engine_id = uuid4()

    with tempfile.TemporaryDirectory() as tmp:
        database = str(Path(tmp) / "migration.db")

        async with SQLiteEventStore(database) as store:
            await store.initialize()
            engine = build_engine(engine_id, store, collaborators)
            await engine.initialize(ADMIN)
            await engine.register(relays, caller=ADMIN)
            await engine.end_registration(caller=ADMIN)
            await engine.deploy_successors()
            await engine.start_migration(caller=ADMIN)

            progress = await engine.run_migration_pass(ResourceBudget(4 * engine.migration_margin))
            print(f"First process stopped at cursor {progress.cursor}")

        async with SQLiteEventStore(database) as store:
            await store.initialize()
            engine = build_engine(engine_id, store, collaborators)

            status = await engine.status()
            print(f"Second process resumes at cursor {status.migration_cursor}")
            progress = await engine.run_migration_pass()
            print(f"Pass completed: {progress.completed} ({progress.processed_this_call} pairs)")


if __name__ == "__main__":
    asyncio.run(main())
