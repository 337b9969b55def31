"""
Phase state machine of the migration engine.

The engine moves through six phases, strictly in order:

    REGISTRATION -> DEPLOYMENT -> APPROVAL -> MIGRATION -> FIRST_PASS_DONE -> CLOSED

No phase can be skipped, revisited or re-entered. The five phase flags
(registration closed, deployment closed, migration started, first pass done,
migration closed) are derived from the current phase, so they are monotone
by construction.
"""

from __future__ import annotations

from enum import Enum


class PhaseFlag(Enum):
    """
    Boolean view of the engine's progress.

    A flag is true once the engine has reached the phase in which the flag
    was first set, and stays true from then on.
    """

    REGISTRATION_CLOSED = "registration_closed"
    DEPLOYMENT_CLOSED = "deployment_closed"
    MIGRATION_STARTED = "migration_started"
    MIGRATION_FIRST_PASS_DONE = "migration_first_pass_done"
    MIGRATION_CLOSED = "migration_closed"


class MigrationPhase(Enum):
    """
    Migration engine lifecycle phases.

    Valid transitions:
        - REGISTRATION -> DEPLOYMENT: end_registration()
        - DEPLOYMENT -> APPROVAL: the last successor is provisioned
        - APPROVAL -> MIGRATION: start_migration()
        - MIGRATION -> FIRST_PASS_DONE: the first pass completes
        - FIRST_PASS_DONE -> CLOSED: end_migration()
    """

    REGISTRATION = "registration"
    """Source entities are being registered."""

    DEPLOYMENT = "deployment"
    """Registration is frozen; successors are being provisioned."""

    APPROVAL = "approval"
    """Every successor exists; sources are granting pull approvals externally."""

    MIGRATION = "migration"
    """Passes are running; none has completed yet."""

    FIRST_PASS_DONE = "first_pass_done"
    """At least one pass completed; more passes may run."""

    CLOSED = "closed"
    """Migration closed. Only views remain available."""

    @property
    def rank(self) -> int:
        """Position of the phase in the lifecycle, starting at 0."""
        return _PHASE_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is MigrationPhase.CLOSED

    @property
    def accepts_registrations(self) -> bool:
        return self is MigrationPhase.REGISTRATION

    @property
    def runs_passes(self) -> bool:
        """True while migration passes may be run."""
        return self in (MigrationPhase.MIGRATION, MigrationPhase.FIRST_PASS_DONE)

    def next_phase(self) -> MigrationPhase | None:
        """The immediate successor phase, or None for the terminal phase."""
        if self.is_terminal:
            return None
        return _PHASE_ORDER[self.rank + 1]

    def can_transition_to(self, target: MigrationPhase) -> bool:
        """
        Check if transition to target phase is valid.

        Only the immediate successor is a valid target.
        """
        return target is self.next_phase()

    def has(self, flag: PhaseFlag) -> bool:
        """
        Check a phase flag.

        Example:
            >>> MigrationPhase.APPROVAL.has(PhaseFlag.DEPLOYMENT_CLOSED)
            True
            >>> MigrationPhase.APPROVAL.has(PhaseFlag.MIGRATION_STARTED)
            False
        """
        return self.rank >= _FLAG_SET_IN[flag].rank

    def flags(self) -> dict[PhaseFlag, bool]:
        """All five flags for this phase."""
        return {flag: self.has(flag) for flag in PhaseFlag}


_PHASE_ORDER: tuple[MigrationPhase, ...] = tuple(MigrationPhase)

# Phase in which each flag first becomes true
_FLAG_SET_IN: dict[PhaseFlag, MigrationPhase] = {
    PhaseFlag.REGISTRATION_CLOSED: MigrationPhase.DEPLOYMENT,
    PhaseFlag.DEPLOYMENT_CLOSED: MigrationPhase.APPROVAL,
    PhaseFlag.MIGRATION_STARTED: MigrationPhase.MIGRATION,
    PhaseFlag.MIGRATION_FIRST_PASS_DONE: MigrationPhase.FIRST_PASS_DONE,
    PhaseFlag.MIGRATION_CLOSED: MigrationPhase.CLOSED,
}


__all__ = [
    "MigrationPhase",
    "PhaseFlag",
]
