"""
Value objects returned by MigrationEngine.

All of them are immutable snapshots; none of them is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from relaymigrator.engine.phases import MigrationPhase, PhaseFlag
from relaymigrator.engine.state import MigrationEngineState


@dataclass(frozen=True)
class EntityPair:
    """
    A source entity and its successor.

    ``successor`` is None until the successor has been provisioned.
    """

    index: int
    source: str
    successor: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "source": self.source, "successor": self.successor}


@dataclass(frozen=True)
class DeploymentProgress:
    """
    Result of one deploy_successors() call.

    Attributes:
        deployed_this_call: Successors provisioned by this call.
        successor_count: Successors provisioned so far.
        population_size: Registered source entities.
        closed: Whether deployment is now closed.
        budget_remaining: Units left in the budget (None if unlimited).
    """

    deployed_this_call: int
    successor_count: int
    population_size: int
    closed: bool
    budget_remaining: int | None

    @property
    def remaining(self) -> int:
        return self.population_size - self.successor_count


@dataclass(frozen=True)
class PassProgress:
    """
    Result of one run_migration_pass() call.

    Attributes:
        pass_number: The pass this call worked on.
        processed_this_call: Pairs fully processed by this call.
        cursor: Where the next call resumes (0 once the pass completed).
        completed: Whether this call finished the pass.
        suspended: Whether this call stopped early for lack of budget.
        errors_this_call: MigrationError records raised by this call.
        transfers_this_call: Successful pull transfers made by this call.
        budget_remaining: Units left in the budget (None if unlimited).
    """

    pass_number: int
    processed_this_call: int
    cursor: int
    completed: bool
    suspended: bool
    errors_this_call: int
    transfers_this_call: int
    budget_remaining: int | None


@dataclass(frozen=True)
class MigrationStatus:
    """
    Point-in-time status of an engine, for operators and audits.

    This class is immutable because it represents a snapshot.
    """

    engine_id: UUID
    administrator: str
    balance_types: tuple[str, ...]
    phase: MigrationPhase
    flags: dict[PhaseFlag, bool]
    population_size: int
    successor_count: int
    migration_cursor: int
    ledger_cursor: int
    pass_number: int
    passes_completed: int
    transfers_succeeded: int
    transfers_failed: int
    version: int

    @classmethod
    def from_state(cls, state: MigrationEngineState, version: int) -> MigrationStatus:
        return cls(
            engine_id=state.engine_id,
            administrator=state.administrator,
            balance_types=state.balance_types,
            phase=state.phase,
            flags=state.phase.flags(),
            population_size=state.population_size,
            successor_count=state.successor_count,
            migration_cursor=state.migration_cursor,
            ledger_cursor=state.ledger_cursor,
            pass_number=state.pass_number,
            passes_completed=state.passes_completed,
            transfers_succeeded=state.transfers_succeeded,
            transfers_failed=state.transfers_failed,
            version=version,
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Returns:
            Dictionary representation suitable for JSON.
        """
        return {
            "engine_id": str(self.engine_id),
            "administrator": self.administrator,
            "balance_types": list(self.balance_types),
            "phase": self.phase.value,
            "flags": {flag.value: value for flag, value in self.flags.items()},
            "population_size": self.population_size,
            "successor_count": self.successor_count,
            "migration_cursor": self.migration_cursor,
            "ledger_cursor": self.ledger_cursor,
            "pass_number": self.pass_number,
            "passes_completed": self.passes_completed,
            "transfers_succeeded": self.transfers_succeeded,
            "transfers_failed": self.transfers_failed,
            "version": self.version,
        }


__all__ = [
    "DeploymentProgress",
    "EntityPair",
    "MigrationStatus",
    "PassProgress",
]
