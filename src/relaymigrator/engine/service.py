"""
MigrationEngine: the public surface of a relay-to-wallet migration.

Each call loads the engine from its event stream, checks the phase gates,
does its work and commits the raised events in one append. A call that
fails a gate raises before anything is appended, so it leaves no trace.

Example:
    >>> store = InMemoryEventStore()
    >>> engine = MigrationEngine(
    ...     engine_id,
    ...     store,
    ...     factory=factory,
    ...     key_directory=keys,
    ...     ledgers={"usdc": usdc, "weth": weth},
    ...     inspector=inspector,
    ... )
    >>> await engine.initialize(administrator=admin)
    >>> await engine.register(relays, caller=admin)
    >>> await engine.end_registration(caller=admin)
    >>> while not (await engine.deploy_successors(ResourceBudget(500_000))).closed:
    ...     pass
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping
from functools import partial
from typing import Any
from uuid import UUID

from eth_utils import is_address, to_checksum_address

from relaymigrator.aggregates.repository import AggregateRepository
from relaymigrator.engine.aggregate import MigrationAggregate
from relaymigrator.engine.budget import ResourceBudget
from relaymigrator.engine.collaborators import (
    BalanceLedger,
    ContractInspector,
    EntityFactory,
    KeyDirectory,
    attempt_pull,
)
from relaymigrator.engine.config import MigrationEngineConfig
from relaymigrator.engine.models import (
    DeploymentProgress,
    EntityPair,
    MigrationStatus,
    PassProgress,
)
from relaymigrator.exceptions import (
    AggregateNotFoundError,
    CollaboratorError,
    EngineAlreadyInitializedError,
    EngineNotInitializedError,
    IndexOutOfRangeError,
    InvalidEntityError,
    LedgerMismatchError,
    ProvisioningError,
)
from relaymigrator.observability import Tracer, create_tracer
from relaymigrator.observability.attributes import (
    ATTR_BUDGET_REMAINING,
    ATTR_CALLER,
    ATTR_CURSOR,
    ATTR_ENGINE_ID,
    ATTR_ENTITY_COUNT,
    ATTR_MIGRATION_PHASE,
    ATTR_PASS_COMPLETED,
    ATTR_PASS_ERRORS,
    ATTR_PASS_NUMBER,
    ATTR_PASS_PROCESSED,
    ATTR_POPULATION_SIZE,
    ATTR_SUCCESSOR_COUNT,
)
from relaymigrator.snapshots.interface import SnapshotStore
from relaymigrator.stores.interface import EventPublisher, EventStore
from relaymigrator.types import BalanceType

logger = logging.getLogger(__name__)


def normalize_identity(value: str) -> str:
    """Checksum ``value`` if it is an address, otherwise return it unchanged."""
    if isinstance(value, str) and is_address(value):
        return str(to_checksum_address(value))
    return value


class MigrationEngine:
    """
    Phase-gated, resumable, budget-bounded migration engine.

    Phases run strictly in order: registration, deployment, approval
    (external), migration, closed. Deployment and migration passes are
    resumable loops; each call works until the supplied budget can no
    longer cover one more iteration, commits its progress, and returns.

    Calls on one instance are serialized by an asyncio.Lock. Two instances
    sharing an event store are kept consistent by optimistic locking.
    """

    def __init__(
        self,
        engine_id: UUID,
        event_store: EventStore,
        *,
        factory: EntityFactory,
        key_directory: KeyDirectory,
        ledgers: Mapping[BalanceType, BalanceLedger],
        inspector: ContractInspector,
        config: MigrationEngineConfig | None = None,
        event_publisher: EventPublisher | None = None,
        snapshot_store: SnapshotStore | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        """
        Create an engine bound to its collaborators.

        Args:
            engine_id: ID of the engine's event stream
            event_store: Store holding the engine's events
            factory: Provisions successor entities
            key_directory: Source of the current authorization key
            ledgers: One ledger per balance type; iteration order is the
                order in which balance types are migrated
            inspector: Decides whether an identifier is a contract account
            config: Engine configuration (defaults to MigrationEngineConfig())
            event_publisher: Receives events after every successful save
            snapshot_store: Store for state snapshots, taken every
                ``config.snapshot_threshold`` events; every call then
                replays only the events after the latest snapshot
            tracer: Optional custom Tracer instance

        Raises:
            ValueError: If no ledger is given or the migration margin
                override is too small for the number of ledgers
        """
        if not ledgers:
            raise ValueError("at least one balance ledger is required")

        self._engine_id = engine_id
        self._config = config or MigrationEngineConfig()
        self._factory = factory
        self._key_directory = key_directory
        self._ledgers: dict[BalanceType, BalanceLedger] = dict(ledgers)
        self._balance_types = tuple(self._ledgers)
        self._inspector = inspector
        self._costs = self._config.costs
        self._deployment_margin = self._config.effective_deployment_margin()
        self._migration_margin = self._config.effective_migration_margin(len(self._balance_types))
        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._repository: AggregateRepository[MigrationAggregate] = AggregateRepository(
            event_store=event_store,
            aggregate_factory=partial(
                MigrationAggregate, aggregate_type=self._config.aggregate_type
            ),
            aggregate_type=self._config.aggregate_type,
            event_publisher=event_publisher if self._config.publish_events else None,
            snapshot_store=snapshot_store,
            snapshot_threshold=self._config.snapshot_threshold,
            tracer=self._tracer,
        )
        self._lock = asyncio.Lock()

    @property
    def engine_id(self) -> UUID:
        return self._engine_id

    @property
    def balance_types(self) -> tuple[str, ...]:
        return self._balance_types

    @property
    def config(self) -> MigrationEngineConfig:
        return self._config

    @property
    def deployment_margin(self) -> int:
        return self._deployment_margin

    @property
    def migration_margin(self) -> int:
        return self._migration_margin

    def _span_attributes(self, caller: str | None, **extra: Any) -> dict[str, Any]:
        attributes: dict[str, Any] = {ATTR_ENGINE_ID: str(self._engine_id)}
        if caller is not None:
            attributes[ATTR_CALLER] = caller
        attributes.update(extra)
        return attributes

    async def _load(self) -> MigrationAggregate:
        try:
            aggregate = await self._repository.load(self._engine_id)
        except AggregateNotFoundError:
            raise EngineNotInitializedError(self._engine_id) from None

        recorded = aggregate.current.balance_types
        if recorded != self._balance_types:
            raise LedgerMismatchError(self._engine_id, recorded, self._balance_types)
        return aggregate

    async def _load_for_call(self, caller: str | None) -> MigrationAggregate:
        aggregate = await self._load()
        aggregate.bind_call(caller)
        return aggregate

    # =========================================================================
    # Administrative surface
    # =========================================================================

    async def initialize(self, administrator: str) -> None:
        """
        Create the engine's event stream.

        Args:
            administrator: Identity allowed to call the privileged operations

        Raises:
            EngineAlreadyInitializedError: If the stream already exists
            ValueError: If administrator is empty
        """
        if not administrator:
            raise ValueError("administrator must not be empty")
        administrator = normalize_identity(administrator)

        async with self._lock:
            with self._tracer.span(
                "relaymigrator.engine.initialize",
                self._span_attributes(administrator),
            ):
                if await self._repository.exists(self._engine_id):
                    raise EngineAlreadyInitializedError(self._engine_id)

                aggregate = self._repository.create_new(self._engine_id)
                aggregate.bind_call(administrator)
                aggregate.create(administrator, self._balance_types)
                await self._repository.save(aggregate)

        logger.info(
            "Initialized migration engine %s for balance types %s",
            self._engine_id,
            ", ".join(self._balance_types),
            extra={
                "engine_id": str(self._engine_id),
                "administrator": administrator,
                "balance_types": list(self._balance_types),
            },
        )

    async def register(self, identifiers: Iterable[str], *, caller: str) -> int:
        """
        Register a batch of source entities, all or nothing.

        Every identifier is checksummed and checked with the contract
        inspector; the engine then rejects the whole batch if any entry is
        already registered or repeated within it.

        Returns:
            Number of entities admitted (0 for an empty batch)

        Raises:
            UnauthorizedCallerError: If caller is not the administrator
            PhaseAlreadyClosedError: If registration is closed
            InvalidEntityError: If an identifier is not a contract address
            DuplicateEntityError: If an identifier is already registered
            CollaboratorError: If the contract inspector fails
        """
        caller = normalize_identity(caller)
        batch = list(identifiers)

        async with self._lock:
            with self._tracer.span(
                "relaymigrator.engine.register",
                self._span_attributes(caller, **{ATTR_ENTITY_COUNT: len(batch)}),
            ) as span:
                aggregate = await self._load_for_call(caller)
                aggregate.ensure_administrator(caller, "register")
                aggregate.ensure_accepts_registrations("register")

                accepted: list[str] = []
                for identifier in batch:
                    address = self._as_entity_address(identifier)
                    if not await self._is_contract(address):
                        raise InvalidEntityError(
                            engine_id=self._engine_id,
                            identifier=address,
                            reason="not a contract account",
                        )
                    accepted.append(address)

                admitted = aggregate.register_entities(accepted)
                await self._repository.save(aggregate)

                if span:
                    span.set_attribute(ATTR_POPULATION_SIZE, aggregate.current.population_size)

        if admitted:
            logger.debug(
                "Registered %d entities on engine %s",
                admitted,
                self._engine_id,
                extra={"engine_id": str(self._engine_id), "count": admitted},
            )
        return admitted

    def _as_entity_address(self, identifier: Any) -> str:
        if not isinstance(identifier, str) or not is_address(identifier):
            raise InvalidEntityError(
                engine_id=self._engine_id,
                identifier=repr(identifier),
                reason="not an address",
            )
        return str(to_checksum_address(identifier))

    async def _is_contract(self, address: str) -> bool:
        try:
            return bool(await self._inspector.is_contract(address))
        except Exception as e:
            raise CollaboratorError(
                f"is_contract({address}) failed: {e}",
                engine_id=self._engine_id,
                collaborator="inspector",
            ) from e

    async def end_registration(self, *, caller: str) -> None:
        """
        Freeze the registered population.

        Raises:
            UnauthorizedCallerError: If caller is not the administrator
            PhaseAlreadyClosedError: If registration is already closed
        """
        caller = normalize_identity(caller)
        async with self._lock:
            with self._tracer.span(
                "relaymigrator.engine.end_registration",
                self._span_attributes(caller),
            ):
                aggregate = await self._load_for_call(caller)
                aggregate.ensure_administrator(caller, "end_registration")
                aggregate.close_registration()
                await self._repository.save(aggregate)

        population = aggregate.current.population_size
        logger.info(
            "Registration closed on engine %s with %d entities",
            self._engine_id,
            population,
            extra={"engine_id": str(self._engine_id), "population_size": population},
        )

    async def start_migration(self, *, caller: str) -> None:
        """
        Open the migration phase.

        Raises:
            UnauthorizedCallerError: If caller is not the administrator
            DeploymentNotClosedError: If some successor is still missing
            AlreadyStartedError: If migration has already started
        """
        caller = normalize_identity(caller)
        async with self._lock:
            with self._tracer.span(
                "relaymigrator.engine.start_migration",
                self._span_attributes(caller),
            ):
                aggregate = await self._load_for_call(caller)
                aggregate.ensure_administrator(caller, "start_migration")
                aggregate.start_migration()
                await self._repository.save(aggregate)

        logger.info(
            "Migration started on engine %s",
            self._engine_id,
            extra={"engine_id": str(self._engine_id)},
        )

    async def end_migration(self, *, caller: str) -> None:
        """
        Close the migration phase and decommission the engine.

        Outstanding MigrationError records do not prevent closing.

        Raises:
            UnauthorizedCallerError: If caller is not the administrator
            AlreadyClosedError: If migration is already closed
            FirstPassIncompleteError: If no pass has completed yet
        """
        caller = normalize_identity(caller)
        async with self._lock:
            with self._tracer.span(
                "relaymigrator.engine.end_migration",
                self._span_attributes(caller),
            ):
                aggregate = await self._load_for_call(caller)
                aggregate.ensure_administrator(caller, "end_migration")
                aggregate.close_migration()
                await self._repository.save(aggregate)

        state = aggregate.current
        logger.info(
            "Migration closed on engine %s after %d passes (%d transfers, %d errors)",
            self._engine_id,
            state.passes_completed,
            state.transfers_succeeded,
            state.transfers_failed,
            extra={
                "engine_id": str(self._engine_id),
                "passes_completed": state.passes_completed,
                "transfers_succeeded": state.transfers_succeeded,
                "transfers_failed": state.transfers_failed,
            },
        )

    # =========================================================================
    # Open surface: resumable loops
    # =========================================================================

    async def deploy_successors(
        self,
        budget: ResourceBudget | None = None,
        *,
        caller: str | None = None,
    ) -> DeploymentProgress:
        """
        Provision successors in registration order until done or out of budget.

        The authorization key is read once, before the first provisioning
        of this call, and used for every successor the call provisions. The
        length of the successor list is the resume point.

        Args:
            budget: Budget for this call (unlimited when omitted)
            caller: Identity recorded on the raised events

        Raises:
            RegistrationNotClosedError: If registration is still open
            PhaseAlreadyClosedError: If deployment is already closed
            ProvisioningError: If the factory fails; successors provisioned
                earlier in the call are saved first
            CollaboratorError: If the key directory fails
        """
        budget = budget if budget is not None else ResourceBudget.unlimited()
        if caller is not None:
            caller = normalize_identity(caller)

        async with self._lock:
            with self._tracer.span(
                "relaymigrator.engine.deploy_successors",
                self._span_attributes(caller),
            ) as span:
                aggregate = await self._load_for_call(caller)
                aggregate.ensure_can_deploy("deploy_successors")
                state = aggregate.current

                deployed = 0
                closed = False
                key: str | None = None
                while True:
                    if state.deployment_complete:
                        aggregate.close_deployment()
                        closed = True
                        break
                    if not budget.can_afford(self._deployment_margin):
                        logger.debug(
                            "Deployment suspended at %d/%d on engine %s",
                            state.successor_count,
                            state.population_size,
                            self._engine_id,
                            extra={
                                "engine_id": str(self._engine_id),
                                "cursor": state.successor_count,
                                "budget_remaining": budget.remaining,
                            },
                        )
                        break
                    if key is None:
                        key = await self._current_key()

                    index = state.successor_count
                    successor = await self._provision(aggregate, index, key)
                    budget.charge(self._costs.provision)
                    aggregate.record_successor(successor, key)
                    budget.charge(self._costs.bookkeeping)
                    deployed += 1

                await self._repository.save(aggregate)

                if span:
                    span.set_attribute(ATTR_SUCCESSOR_COUNT, state.successor_count)
                    span.set_attribute(ATTR_POPULATION_SIZE, state.population_size)
                    span.set_attribute(ATTR_MIGRATION_PHASE, state.phase.value)
                    if budget.remaining is not None:
                        span.set_attribute(ATTR_BUDGET_REMAINING, budget.remaining)

        if closed:
            logger.info(
                "Deployment closed on engine %s with %d successors",
                self._engine_id,
                state.successor_count,
                extra={"engine_id": str(self._engine_id), "successor_count": state.successor_count},
            )

        return DeploymentProgress(
            deployed_this_call=deployed,
            successor_count=state.successor_count,
            population_size=state.population_size,
            closed=closed,
            budget_remaining=budget.remaining,
        )

    async def _current_key(self) -> str:
        try:
            return await self._key_directory.current_key()
        except Exception as e:
            raise CollaboratorError(
                f"current_key() failed: {e}",
                engine_id=self._engine_id,
                collaborator="key_directory",
            ) from e

    async def _provision(self, aggregate: MigrationAggregate, index: int, key: str) -> str:
        """
        Provision the successor for ``index``.

        On failure the successors already recorded in this call are saved
        before ProvisioningError propagates, since they exist externally.
        """
        try:
            successor = await self._factory.provision(key)
        except Exception as e:
            await self._repository.save(aggregate)
            logger.error(
                "Provisioning successor %d failed on engine %s: %s",
                index,
                self._engine_id,
                e,
                extra={"engine_id": str(self._engine_id), "index": index},
            )
            raise ProvisioningError(str(e), engine_id=self._engine_id, index=index) from e

        if not isinstance(successor, str) or not is_address(successor):
            await self._repository.save(aggregate)
            raise ProvisioningError(
                f"factory returned {successor!r}, which is not an address",
                engine_id=self._engine_id,
                index=index,
            )
        return str(to_checksum_address(successor))

    async def run_migration_pass(
        self,
        budget: ResourceBudget | None = None,
        *,
        caller: str | None = None,
    ) -> PassProgress:
        """
        Advance the current migration pass from the persisted cursor.

        For each pair, every ledger's balance is read fresh and, when it is
        non-zero, pulled to the successor in full. A failed pull is recorded
        as a MigrationError event and the pass moves on. Before each pair
        the budget must cover the heaviest possible iteration; otherwise the
        cursor is persisted and the call returns.

        Args:
            budget: Budget for this call (unlimited when omitted)
            caller: Identity recorded on the raised events

        Raises:
            MigrationNotStartedError: If migration has not started
            AlreadyClosedError: If migration is closed
            CollaboratorError: If a balance read fails; the cursor is saved
                at the failing pair first
        """
        budget = budget if budget is not None else ResourceBudget.unlimited()
        if caller is not None:
            caller = normalize_identity(caller)

        async with self._lock:
            with self._tracer.span(
                "relaymigrator.engine.run_migration_pass",
                self._span_attributes(caller),
            ) as span:
                aggregate = await self._load_for_call(caller)
                aggregate.ensure_can_run_pass("run_migration_pass")
                state = aggregate.current

                pass_number = state.pass_number
                index = state.migration_cursor
                ledger_start = state.ledger_cursor
                processed = 0
                errors = 0
                transfers = 0
                suspended = False

                if span:
                    span.set_attribute(ATTR_PASS_NUMBER, pass_number)
                    span.set_attribute(ATTR_CURSOR, index)

                while index < state.population_size:
                    if not budget.can_afford(self._migration_margin):
                        aggregate.suspend_pass(index, ledger_start)
                        suspended = True
                        break

                    pair_transfers, pair_errors = await self._migrate_pair(
                        aggregate, index, budget, ledger_start
                    )
                    ledger_start = 0
                    transfers += pair_transfers
                    errors += pair_errors
                    budget.charge(self._costs.bookkeeping)
                    processed += 1
                    index += 1

                first_pass = False
                if not suspended:
                    first_pass = aggregate.complete_pass()

                await self._repository.save(aggregate)

                if span:
                    span.set_attribute(ATTR_PASS_PROCESSED, processed)
                    span.set_attribute(ATTR_PASS_ERRORS, errors)
                    span.set_attribute(ATTR_PASS_COMPLETED, not suspended)
                    span.set_attribute(ATTR_MIGRATION_PHASE, state.phase.value)
                    if budget.remaining is not None:
                        span.set_attribute(ATTR_BUDGET_REMAINING, budget.remaining)

        if suspended:
            logger.debug(
                "Pass %d suspended at cursor %d on engine %s",
                pass_number,
                index,
                self._engine_id,
                extra={
                    "engine_id": str(self._engine_id),
                    "pass_number": pass_number,
                    "cursor": index,
                    "budget_remaining": budget.remaining,
                },
            )
        else:
            logger.info(
                "Pass %d completed on engine %s%s",
                pass_number,
                self._engine_id,
                " (first pass)" if first_pass else "",
                extra={
                    "engine_id": str(self._engine_id),
                    "pass_number": pass_number,
                    "first_pass": first_pass,
                },
            )

        return PassProgress(
            pass_number=pass_number,
            processed_this_call=processed,
            cursor=state.migration_cursor,
            completed=not suspended,
            suspended=suspended,
            errors_this_call=errors,
            transfers_this_call=transfers,
            budget_remaining=budget.remaining,
        )

    async def _migrate_pair(
        self,
        aggregate: MigrationAggregate,
        index: int,
        budget: ResourceBudget,
        start: int = 0,
    ) -> tuple[int, int]:
        """
        Pull every balance type from one source to its successor.

        Balance types before position ``start`` were already attempted for
        this pair in an earlier call and are skipped. A failed balance read
        saves the pass at this pair and position, so the retry neither
        repeats pulls nor records their failures twice.

        Returns:
            Tuple of (successful transfers, recorded failures)
        """
        state = aggregate.current
        source = state.source_entities[index]
        successor = state.successor_entities[index]
        transfers = 0
        errors = 0

        ledgers = list(self._ledgers.items())
        for position in range(start, len(ledgers)):
            balance_type, ledger = ledgers[position]
            try:
                amount = await ledger.balance_of(source)
            except Exception as e:
                aggregate.suspend_pass(index, position)
                await self._repository.save(aggregate)
                raise CollaboratorError(
                    f"balance_of({source}) failed: {e}",
                    engine_id=self._engine_id,
                    collaborator=f"ledger:{balance_type}",
                ) from e
            budget.charge(self._costs.balance_read)

            if amount <= 0:
                continue

            outcome = await attempt_pull(ledger, source, successor, amount)
            budget.charge(self._costs.pull_transfer)

            if outcome.succeeded:
                aggregate.record_transfer(index, balance_type, amount)
                transfers += 1
                continue

            reason = outcome.reason or "transfer failed"
            aggregate.record_transfer_failure(index, balance_type, amount, reason)
            errors += 1
            logger.warning(
                "Migration of %s from %s to %s failed: %s",
                balance_type,
                source,
                successor,
                reason,
                extra={
                    "engine_id": str(self._engine_id),
                    "index": index,
                    "balance_type": balance_type,
                    "source": source,
                    "successor": successor,
                    "amount": amount,
                    "pass_number": state.pass_number,
                },
            )

        return transfers, errors

    # =========================================================================
    # Read surface
    # =========================================================================

    async def population_size(self) -> int:
        aggregate = await self._load()
        return aggregate.current.population_size

    async def successor_count(self) -> int:
        aggregate = await self._load()
        return aggregate.current.successor_count

    async def get_pair(self, index: int) -> EntityPair:
        """
        Return the (source, successor) pair at ``index``.

        The successor is None while it has not been provisioned.

        Raises:
            IndexOutOfRangeError: If index is negative or not below the
                population size
        """
        state = (await self._load()).current
        if index < 0 or index >= state.population_size:
            raise IndexOutOfRangeError(
                engine_id=self._engine_id,
                index=index,
                population_size=state.population_size,
            )
        return EntityPair(
            index=index,
            source=state.source_entities[index],
            successor=state.successor_at(index),
        )

    async def get_pairs(self, start: int = 0, limit: int | None = None) -> list[EntityPair]:
        """
        Return a page of pairs in registration order.

        Args:
            start: Index of the first pair
            limit: Maximum number of pairs (all remaining when None)
        """
        if start < 0:
            raise ValueError(f"start must be >= 0, got {start}")
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        state = (await self._load()).current
        end = state.population_size if limit is None else min(state.population_size, start + limit)
        return [
            EntityPair(index=i, source=state.source_entities[i], successor=state.successor_at(i))
            for i in range(start, end)
        ]

    async def status(self) -> MigrationStatus:
        aggregate = await self._load()
        return MigrationStatus.from_state(aggregate.current, aggregate.version)


__all__ = [
    "MigrationEngine",
    "normalize_identity",
]
