"""
Event-sourced aggregate of one migration engine.

Commands check the phase gates and raise events; the ``@handles`` methods
are the only code that changes ``MigrationEngineState``. Replaying the
stored events through the same handlers rebuilds the engine after a
restart.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any
from uuid import UUID, uuid4

from relaymigrator.aggregates.base import DeclarativeAggregate
from relaymigrator.engine.phases import MigrationPhase, PhaseFlag
from relaymigrator.engine.state import MigrationEngineState
from relaymigrator.events.migration import (
    ENGINE_AGGREGATE_TYPE,
    BalanceMigrated,
    DeploymentClosed,
    EntitiesRegistered,
    MigrationClosed,
    MigrationEngineCreated,
    MigrationError,
    MigrationPassCompleted,
    MigrationPassSuspended,
    MigrationStarted,
    RegistrationClosed,
    SuccessorDeployed,
)
from relaymigrator.exceptions import (
    AlreadyClosedError,
    AlreadyStartedError,
    DeploymentNotClosedError,
    DuplicateEntityError,
    EngineAlreadyInitializedError,
    EngineNotInitializedError,
    FirstPassIncompleteError,
    InvalidPhaseTransitionError,
    MigrationNotStartedError,
    PhaseAlreadyClosedError,
    RegistrationNotClosedError,
    UnauthorizedCallerError,
)
from relaymigrator.handlers import handles
from relaymigrator.types import BalanceType


class MigrationAggregate(DeclarativeAggregate[MigrationEngineState]):
    """
    Aggregate root for a migration engine.

    Every event raised between two calls to ``bind_call`` shares the caller
    as ``actor_id`` and one ``correlation_id``.
    """

    aggregate_type = ENGINE_AGGREGATE_TYPE
    unregistered_event_handling = "error"

    def __init__(self, aggregate_id: UUID, *, aggregate_type: str | None = None) -> None:
        super().__init__(aggregate_id)
        if aggregate_type is not None:
            self.aggregate_type = aggregate_type
        self._actor_id: str | None = None
        self._correlation_id: UUID = uuid4()

    def _get_initial_state(self) -> MigrationEngineState:
        return MigrationEngineState(engine_id=self.aggregate_id)

    @property
    def current(self) -> MigrationEngineState:
        """
        State of a created engine.

        Raises:
            EngineNotInitializedError: If no MigrationEngineCreated was applied
        """
        if self._state is None:
            raise EngineNotInitializedError(self.aggregate_id)
        return self._state

    @property
    def phase(self) -> MigrationPhase:
        return self.current.phase

    def bind_call(self, actor_id: str | None) -> None:
        """Start a new engine call on behalf of ``actor_id``."""
        self._actor_id = actor_id
        self._correlation_id = uuid4()

    def _event_fields(self) -> dict[str, Any]:
        return {
            "aggregate_id": self.aggregate_id,
            "aggregate_type": self.aggregate_type,
            "aggregate_version": self.get_next_version(),
            "actor_id": self._actor_id,
            "correlation_id": self._correlation_id,
        }

    def _advance(self, target: MigrationPhase) -> None:
        state = self.current
        if not state.phase.can_transition_to(target):
            raise InvalidPhaseTransitionError(
                engine_id=self.aggregate_id,
                current_phase=state.phase,
                target_phase=target,
            )
        state.phase = target

    # =========================================================================
    # Gates
    # =========================================================================

    def ensure_administrator(self, caller: str | None, operation: str) -> None:
        if caller is None or caller != self.current.administrator:
            raise UnauthorizedCallerError(self.aggregate_id, caller, operation)

    def ensure_accepts_registrations(self, operation: str) -> None:
        if not self.phase.accepts_registrations:
            raise PhaseAlreadyClosedError(
                "registration is closed",
                engine_id=self.aggregate_id,
                current_phase=self.phase,
                operation=operation,
            )

    def ensure_can_deploy(self, operation: str) -> None:
        phase = self.phase
        if not phase.has(PhaseFlag.REGISTRATION_CLOSED):
            raise RegistrationNotClosedError(
                "registration must be closed first",
                engine_id=self.aggregate_id,
                current_phase=phase,
                operation=operation,
            )
        if phase.has(PhaseFlag.DEPLOYMENT_CLOSED):
            raise PhaseAlreadyClosedError(
                "deployment is closed",
                engine_id=self.aggregate_id,
                current_phase=phase,
                operation=operation,
            )

    def ensure_can_run_pass(self, operation: str) -> None:
        phase = self.phase
        if not phase.has(PhaseFlag.MIGRATION_STARTED):
            raise MigrationNotStartedError(
                "migration has not started",
                engine_id=self.aggregate_id,
                current_phase=phase,
                operation=operation,
            )
        if phase.has(PhaseFlag.MIGRATION_CLOSED):
            raise AlreadyClosedError(
                "migration is closed",
                engine_id=self.aggregate_id,
                current_phase=phase,
                operation=operation,
            )

    # =========================================================================
    # Commands
    # =========================================================================

    def create(self, administrator: str, balance_types: Sequence[str]) -> None:
        if self._state is not None:
            raise EngineAlreadyInitializedError(self.aggregate_id)
        self._raise_event(
            MigrationEngineCreated(
                administrator=administrator,
                balance_types=tuple(balance_types),
                **self._event_fields(),
            )
        )

    def register_entities(self, entities: Sequence[str]) -> int:
        """
        Admit a batch of already validated entities.

        Nothing is recorded if any entity is a duplicate, so a rejected batch
        leaves the registry untouched.

        Raises:
            DuplicateEntityError: If an entity is already registered or
                appears twice in the batch

        Returns:
            Number of entities admitted
        """
        self.ensure_accepts_registrations("register")
        state = self.current
        seen: set[str] = set()
        for entity in entities:
            if entity in state.registered or entity in seen:
                raise DuplicateEntityError(engine_id=self.aggregate_id, identifier=entity)
            seen.add(entity)

        if not entities:
            return 0

        self._raise_event(
            EntitiesRegistered(
                entities=tuple(entities),
                first_index=state.population_size,
                **self._event_fields(),
            )
        )
        return len(entities)

    def close_registration(self) -> None:
        self.ensure_accepts_registrations("end_registration")
        self._raise_event(
            RegistrationClosed(
                population_size=self.current.population_size,
                **self._event_fields(),
            )
        )

    def record_successor(self, successor: str, authorization_key: str) -> int:
        """
        Record the successor of the next source without one.

        Returns:
            Index of the source the successor belongs to
        """
        self.ensure_can_deploy("deploy_successors")
        state = self.current
        index = state.successor_count
        if index >= state.population_size:
            raise PhaseAlreadyClosedError(
                "every source already has a successor",
                engine_id=self.aggregate_id,
                current_phase=state.phase,
                operation="deploy_successors",
            )
        self._raise_event(
            SuccessorDeployed(
                index=index,
                source=state.source_entities[index],
                successor=successor,
                authorization_key=authorization_key,
                **self._event_fields(),
            )
        )
        return index

    def close_deployment(self) -> None:
        self.ensure_can_deploy("deploy_successors")
        state = self.current
        if not state.deployment_complete:
            raise DeploymentNotClosedError(
                f"{state.population_size - state.successor_count} successors are missing",
                engine_id=self.aggregate_id,
                current_phase=state.phase,
                operation="deploy_successors",
            )
        self._raise_event(
            DeploymentClosed(successor_count=state.successor_count, **self._event_fields())
        )

    def start_migration(self) -> None:
        phase = self.phase
        if not phase.has(PhaseFlag.DEPLOYMENT_CLOSED):
            raise DeploymentNotClosedError(
                "deployment must be closed first",
                engine_id=self.aggregate_id,
                current_phase=phase,
                operation="start_migration",
            )
        if phase.has(PhaseFlag.MIGRATION_STARTED):
            raise AlreadyStartedError(
                "migration has already started",
                engine_id=self.aggregate_id,
                current_phase=phase,
                operation="start_migration",
            )
        self._raise_event(MigrationStarted(**self._event_fields()))

    def record_transfer(self, index: int, balance_type: BalanceType, amount: int) -> None:
        self.ensure_can_run_pass("run_migration_pass")
        state = self.current
        self._raise_event(
            BalanceMigrated(
                index=index,
                balance_type=balance_type,
                source=state.source_entities[index],
                successor=state.successor_entities[index],
                amount=amount,
                pass_number=state.pass_number,
                **self._event_fields(),
            )
        )

    def record_transfer_failure(
        self,
        index: int,
        balance_type: BalanceType,
        amount: int,
        reason: str,
    ) -> None:
        self.ensure_can_run_pass("run_migration_pass")
        state = self.current
        self._raise_event(
            MigrationError(
                index=index,
                balance_type=balance_type,
                source=state.source_entities[index],
                successor=state.successor_entities[index],
                amount=amount,
                pass_number=state.pass_number,
                reason=reason,
                **self._event_fields(),
            )
        )

    def suspend_pass(self, cursor: int, ledger_position: int = 0) -> None:
        self.ensure_can_run_pass("run_migration_pass")
        self._raise_event(
            MigrationPassSuspended(
                pass_number=self.current.pass_number,
                cursor=cursor,
                ledger_position=ledger_position,
                **self._event_fields(),
            )
        )

    def complete_pass(self) -> bool:
        """
        Finish the current pass.

        Returns:
            True if this was the first pass ever completed
        """
        self.ensure_can_run_pass("run_migration_pass")
        state = self.current
        first_pass = not state.has(PhaseFlag.MIGRATION_FIRST_PASS_DONE)
        self._raise_event(
            MigrationPassCompleted(
                pass_number=state.pass_number,
                first_pass=first_pass,
                **self._event_fields(),
            )
        )
        return first_pass

    def close_migration(self) -> None:
        phase = self.phase
        if phase.has(PhaseFlag.MIGRATION_CLOSED):
            raise AlreadyClosedError(
                "migration is already closed",
                engine_id=self.aggregate_id,
                current_phase=phase,
                operation="end_migration",
            )
        if not phase.has(PhaseFlag.MIGRATION_FIRST_PASS_DONE):
            raise FirstPassIncompleteError(
                "no migration pass has completed",
                engine_id=self.aggregate_id,
                current_phase=phase,
                operation="end_migration",
            )
        self._raise_event(MigrationClosed(**self._event_fields()))

    # =========================================================================
    # Event handlers
    # =========================================================================

    @handles(MigrationEngineCreated)
    def _on_created(self, event: MigrationEngineCreated) -> None:
        state = self.current
        state.administrator = event.administrator
        state.balance_types = event.balance_types

    @handles(EntitiesRegistered)
    def _on_entities_registered(self, event: EntitiesRegistered) -> None:
        state = self.current
        state.source_entities.extend(event.entities)
        state.registered.update(event.entities)

    @handles(RegistrationClosed)
    def _on_registration_closed(self, event: RegistrationClosed) -> None:
        self._advance(MigrationPhase.DEPLOYMENT)

    @handles(SuccessorDeployed)
    def _on_successor_deployed(self, event: SuccessorDeployed) -> None:
        self.current.successor_entities.append(event.successor)

    @handles(DeploymentClosed)
    def _on_deployment_closed(self, event: DeploymentClosed) -> None:
        self._advance(MigrationPhase.APPROVAL)

    @handles(MigrationStarted)
    def _on_migration_started(self, event: MigrationStarted) -> None:
        self._advance(MigrationPhase.MIGRATION)

    @handles(BalanceMigrated)
    def _on_balance_migrated(self, event: BalanceMigrated) -> None:
        self.current.transfers_succeeded += 1

    @handles(MigrationError)
    def _on_migration_error(self, event: MigrationError) -> None:
        self.current.transfers_failed += 1

    @handles(MigrationPassSuspended)
    def _on_pass_suspended(self, event: MigrationPassSuspended) -> None:
        state = self.current
        state.migration_cursor = event.cursor
        state.ledger_cursor = event.ledger_position

    @handles(MigrationPassCompleted)
    def _on_pass_completed(self, event: MigrationPassCompleted) -> None:
        state = self.current
        state.migration_cursor = 0
        state.ledger_cursor = 0
        state.pass_number = event.pass_number + 1
        state.passes_completed += 1
        if event.first_pass:
            self._advance(MigrationPhase.FIRST_PASS_DONE)

    @handles(MigrationClosed)
    def _on_migration_closed(self, event: MigrationClosed) -> None:
        self._advance(MigrationPhase.CLOSED)


__all__ = [
    "MigrationAggregate",
]
