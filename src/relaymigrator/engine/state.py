"""State of a migration engine, rebuilt from its events."""

from uuid import UUID

from pydantic import BaseModel, Field

from relaymigrator.engine.phases import MigrationPhase, PhaseFlag


class MigrationEngineState(BaseModel):
    """
    Registry, successor list, phase and cursor of one engine.

    ``source_entities`` and ``successor_entities`` are index-aligned: the
    successor at position i belongs to the source at position i.
    ``registered`` mirrors ``source_entities`` for constant-time duplicate
    checks. Both lists only ever grow.

    ``ledger_cursor`` is the balance-type position to resume from within the
    pair at ``migration_cursor``; it is 0 except after a failed balance read.
    """

    engine_id: UUID
    administrator: str = ""
    balance_types: tuple[str, ...] = ()
    phase: MigrationPhase = MigrationPhase.REGISTRATION

    source_entities: list[str] = Field(default_factory=list)
    registered: set[str] = Field(default_factory=set)
    successor_entities: list[str] = Field(default_factory=list)

    migration_cursor: int = 0
    ledger_cursor: int = 0
    pass_number: int = 1
    passes_completed: int = 0

    transfers_succeeded: int = 0
    transfers_failed: int = 0

    @property
    def population_size(self) -> int:
        return len(self.source_entities)

    @property
    def successor_count(self) -> int:
        return len(self.successor_entities)

    @property
    def deployment_complete(self) -> bool:
        return self.successor_count == self.population_size

    def has(self, flag: PhaseFlag) -> bool:
        return self.phase.has(flag)

    def successor_at(self, index: int) -> str | None:
        if index < self.successor_count:
            return self.successor_entities[index]
        return None
