"""
Basic Usage Example

Walks one migration through every phase using in-memory collaborators:
- Registering relay contracts
- Deploying successor wallets under a small per-call budget
- Running migration passes and reading the error log
- Closing the migration

Run with: python examples/basic_usage.py
"""

import asyncio
from uuid import uuid4

from relaymigrator import (
    InMemoryEventBus,
    InMemoryEventStore,
    MigrationEngine,
    MigrationErrorLog,
    ResourceBudget,
)
from relaymigrator.testing import (
    InMemoryLedger,
    MutableKeyDirectory,
    SequentialEntityFactory,
    StaticContractInspector,
    relay_address,
)

ADMIN = "0x" + "ad" * 20


async def main():
    print("=" * 60)
    print("Relay Migration Example")
    print("=" * 60)

    relays = [relay_address(n) for n in range(1, 6)]
    usdc, weth = InMemoryLedger("usdc"), InMemoryLedger("weth")
    for relay in relays:
        for ledger in (usdc, weth):
            ledger.credit(relay, 1_000)
            ledger.approve(relay)
    # One relay never approved weth pulls
    weth.revoke(relays[3])

    engine_id = uuid4()
    bus = InMemoryEventBus(enable_tracing=False)
    error_log = MigrationErrorLog(engine_id)
    bus.subscribe_all(error_log)

    engine = MigrationEngine(
        engine_id,
        InMemoryEventStore(enable_tracing=False),
        factory=SequentialEntityFactory(),
        key_directory=MutableKeyDirectory("wallet-key-1"),
        ledgers={"usdc": usdc, "weth": weth},
        inspector=StaticContractInspector(relays),
        event_publisher=bus,
    )

    print("\n1. Registration")
    await engine.initialize(ADMIN)
    admitted = await engine.register(relays, caller=ADMIN)
    await engine.end_registration(caller=ADMIN)
    print(f"   Registered {admitted} relays")

    print("\n2. Deployment (two successors per call)")
    calls = 0
    while True:
        calls += 1
        progress = await engine.deploy_successors(ResourceBudget(2 * engine.deployment_margin))
        print(f"   Call {calls}: {progress.successor_count}/{progress.population_size} deployed")
        if progress.closed:
            break

    print("\n3. Approval happens outside the engine; starting migration")
    await engine.start_migration(caller=ADMIN)

    print("\n4. First pass")
    first = await engine.run_migration_pass()
    print(f"   Transfers: {first.transfers_this_call}, errors: {first.errors_this_call}")
    for error in error_log.outstanding():
        print(f"   Outstanding: pair {error.index} {error.balance_type} ({error.reason})")

    print("\n5. Relay approves; second pass picks up the remainder")
    weth.approve(relays[3])
    second = await engine.run_migration_pass()
    print(f"   Transfers: {second.transfers_this_call}, outstanding: {len(error_log)}")

    await engine.end_migration(caller=ADMIN)

    print("\n6. Final status")
    for key, value in (await engine.status()).to_dict().items():
        print(f"   {key}: {value}")

    print("\n" + "=" * 60)
    print("Example completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
