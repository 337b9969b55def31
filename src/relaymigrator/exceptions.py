"""
Library exceptions for the relaymigrator package.

Exception Hierarchy:
    MigratorError (base)
    +-- EventStoreError
    |   +-- OptimisticLockError
    +-- AggregateNotFoundError
    +-- EventVersionError
    +-- UnhandledEventError
    +-- EngineNotInitializedError
    +-- EngineAlreadyInitializedError
    +-- LedgerMismatchError
    +-- UnauthorizedCallerError
    +-- PhaseGateError
    |   +-- PhaseAlreadyClosedError
    |   +-- RegistrationNotClosedError
    |   +-- DeploymentNotClosedError
    |   +-- AlreadyStartedError
    |   +-- MigrationNotStartedError
    |   +-- FirstPassIncompleteError
    |   +-- AlreadyClosedError
    |   +-- InvalidPhaseTransitionError
    +-- EntityError
    |   +-- InvalidEntityError
    |   +-- DuplicateEntityError
    +-- IndexOutOfRangeError
    +-- CollaboratorError
        +-- ProvisioningError

Every gate, entity, access and lookup error aborts the call that raised it
without changing engine state. Per-entity transfer failures are never
raised; they are recorded as ``MigrationError`` events instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from relaymigrator.engine.phases import MigrationPhase


class ErrorSeverity(Enum):
    """
    Severity level of engine errors.

    Attributes:
        CRITICAL: State integrity is in question (e.g. version conflicts).
        ERROR: A collaborator or infrastructure failure.
        WARNING: A caller mistake such as calling a gate out of order.
    """

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"

    @property
    def log_level(self) -> int:
        """
        Get the corresponding Python logging level.

        Returns:
            Python logging level constant.
        """
        level_map = {
            ErrorSeverity.CRITICAL: logging.CRITICAL,
            ErrorSeverity.ERROR: logging.ERROR,
            ErrorSeverity.WARNING: logging.WARNING,
        }
        return level_map[self]


@dataclass(frozen=True)
class ErrorClassification:
    """
    Metadata attached to every MigratorError subclass.

    Attributes:
        severity: The severity level of the error.
        error_code: Unique error code for programmatic handling.
        category: Error category ("gate", "entity", "access", "lookup",
            "collaborator", "store", "state").
        suggested_action: Human-readable guidance for operators.
    """

    severity: ErrorSeverity
    error_code: str
    category: str
    suggested_action: str

    @property
    def aborts_call(self) -> bool:
        """True for caller mistakes that leave engine state untouched."""
        return self.category in ("gate", "entity", "access", "lookup")

    def to_dict(self) -> dict[str, Any]:
        """Convert classification to a JSON-compatible dictionary."""
        return {
            "severity": self.severity.value,
            "error_code": self.error_code,
            "category": self.category,
            "suggested_action": self.suggested_action,
        }


class MigratorError(Exception):
    """
    Base exception for relaymigrator.

    Attributes:
        message: Human-readable error description.
        engine_id: The engine that raised the error, if known.
        classification: Error classification metadata for the subclass.
    """

    _default_classification: ErrorClassification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        error_code="MIGRATOR_ERROR",
        category="general",
        suggested_action="Review engine logs for details",
    )

    def __init__(self, message: str, *, engine_id: UUID | None = None) -> None:
        self.message = message
        self.engine_id = engine_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.engine_id:
            return f"{self.message} engine_id={self.engine_id}"
        return self.message

    @property
    def classification(self) -> ErrorClassification:
        """Get the error classification for this exception."""
        return self._default_classification

    @property
    def error_code(self) -> str:
        """Unique error code (e.g. "DUPLICATE_ENTITY")."""
        return self.classification.error_code

    @property
    def severity(self) -> ErrorSeverity:
        """Severity level of this error."""
        return self.classification.severity

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for serialization.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "message": self.message,
            "engine_id": str(self.engine_id) if self.engine_id else None,
            "error_code": self.error_code,
            "classification": self.classification.to_dict(),
        }


# =============================================================================
# Event store and aggregate errors
# =============================================================================


class EventStoreError(MigratorError):
    """Raised when there's an error in the event store."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        error_code="EVENT_STORE_ERROR",
        category="store",
        suggested_action="Check event store connectivity and schema",
    )


class OptimisticLockError(EventStoreError):
    """Raised when there's a version conflict during event append."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        error_code="OPTIMISTIC_LOCK",
        category="store",
        suggested_action="Another writer advanced the engine; reload and retry the call",
    )

    def __init__(self, aggregate_id: UUID, expected_version: int, actual_version: int) -> None:
        self.aggregate_id = aggregate_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Optimistic lock error for aggregate {aggregate_id}: "
            f"expected version {expected_version}, but current version is {actual_version}"
        )


class AggregateNotFoundError(MigratorError):
    """Raised when an aggregate cannot be found."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        error_code="AGGREGATE_NOT_FOUND",
        category="lookup",
        suggested_action="Verify the aggregate ID is correct",
    )

    def __init__(self, aggregate_id: UUID, aggregate_type: str | None = None) -> None:
        self.aggregate_id = aggregate_id
        self.aggregate_type = aggregate_type
        type_info = f" of type {aggregate_type}" if aggregate_type else ""
        super().__init__(f"Aggregate{type_info} not found: {aggregate_id}")


class EventVersionError(MigratorError):
    """
    Raised when event version validation fails during aggregate event application.

    Attributes:
        expected_version: The version that was expected (current version + 1)
        actual_version: The version found in the event
        event_id: ID of the event with invalid version
        aggregate_id: ID of the aggregate being updated
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        error_code="EVENT_VERSION_MISMATCH",
        category="state",
        suggested_action="Inspect the event stream for gaps or reordering",
    )

    def __init__(
        self,
        expected_version: int,
        actual_version: int,
        event_id: UUID,
        aggregate_id: UUID,
    ) -> None:
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.event_id = event_id
        self.aggregate_id = aggregate_id
        super().__init__(
            f"Event version mismatch for aggregate {aggregate_id}: "
            f"expected version {expected_version}, got {actual_version} "
            f"(event_id: {event_id})"
        )


class UnhandledEventError(MigratorError):
    """
    Raised when an event has no registered handler and strict mode is enabled.

    Attributes:
        event_type: The name of the event type that wasn't handled
        event_id: ID of the unhandled event
        handler_class: Name of the aggregate class
        available_handlers: List of event type names that have handlers
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        error_code="UNHANDLED_EVENT",
        category="state",
        suggested_action="Add a @handles method for the event type",
    )

    def __init__(
        self,
        event_type: str,
        event_id: UUID,
        handler_class: str,
        available_handlers: list[str],
    ) -> None:
        self.event_type = event_type
        self.event_id = event_id
        self.handler_class = handler_class
        self.available_handlers = available_handlers
        handlers_str = ", ".join(available_handlers) if available_handlers else "none"
        super().__init__(
            f"No handler registered for event type '{event_type}' "
            f"in {handler_class}. "
            f"Available handlers: {handlers_str}."
        )


# =============================================================================
# Engine lifecycle and access errors
# =============================================================================


class EngineNotInitializedError(MigratorError):
    """Raised when an operation targets an engine whose stream does not exist."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="ENGINE_NOT_INITIALIZED",
        category="lookup",
        suggested_action="Call MigrationEngine.initialize() first",
    )

    def __init__(self, engine_id: UUID) -> None:
        super().__init__("Migration engine has not been initialized", engine_id=engine_id)


class EngineAlreadyInitializedError(MigratorError):
    """Raised when initialize() is called for an engine that already exists."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="ENGINE_ALREADY_INITIALIZED",
        category="gate",
        suggested_action="Load the existing engine instead of creating it again",
    )

    def __init__(self, engine_id: UUID) -> None:
        super().__init__("Migration engine is already initialized", engine_id=engine_id)


class LedgerMismatchError(MigratorError):
    """
    Raised when the configured ledgers differ from those recorded at creation.

    The order of balance types is part of the migration contract, so a
    reordered mapping is a mismatch too.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        error_code="LEDGER_MISMATCH",
        category="access",
        suggested_action="Construct the engine with the balance types it was created with",
    )

    def __init__(
        self,
        engine_id: UUID,
        recorded: tuple[str, ...],
        configured: tuple[str, ...],
    ) -> None:
        self.recorded = recorded
        self.configured = configured
        super().__init__(
            f"Engine tracks balance types {list(recorded)} but was given {list(configured)}",
            engine_id=engine_id,
        )


class UnauthorizedCallerError(MigratorError):
    """Raised when a privileged operation is called by someone other than the administrator."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="UNAUTHORIZED_CALLER",
        category="access",
        suggested_action="Call administrative operations as the engine administrator",
    )

    def __init__(self, engine_id: UUID, caller: str | None, operation: str) -> None:
        self.caller = caller
        self.operation = operation
        super().__init__(
            f"Caller {caller!r} is not allowed to call {operation}",
            engine_id=engine_id,
        )


# =============================================================================
# Phase gate errors
# =============================================================================


class PhaseGateError(MigratorError):
    """
    Raised when an operation is invalid for the engine's current phase.

    Attributes:
        current_phase: The phase the engine was in.
        operation: The operation that was attempted.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="PHASE_GATE",
        category="gate",
        suggested_action="Wait for the correct phase before calling this operation",
    )

    def __init__(
        self,
        message: str,
        *,
        engine_id: UUID,
        current_phase: MigrationPhase,
        operation: str,
    ) -> None:
        self.current_phase = current_phase
        self.operation = operation
        super().__init__(
            f"{operation}: {message} (phase={current_phase.value})",
            engine_id=engine_id,
        )


class PhaseAlreadyClosedError(PhaseGateError):
    """Raised when registration or deployment is acted on after it closed."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="PHASE_ALREADY_CLOSED",
        category="gate",
        suggested_action="The phase is closed permanently; move on to the next phase",
    )


class RegistrationNotClosedError(PhaseGateError):
    """Raised when deployment is attempted before registration closed."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="REGISTRATION_NOT_CLOSED",
        category="gate",
        suggested_action="Call end_registration() before deploying successors",
    )


class DeploymentNotClosedError(PhaseGateError):
    """Raised when migration is started before every successor exists."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="DEPLOYMENT_NOT_CLOSED",
        category="gate",
        suggested_action="Call deploy_successors() until deployment closes",
    )


class AlreadyStartedError(PhaseGateError):
    """Raised when start_migration() is called a second time."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="ALREADY_STARTED",
        category="gate",
        suggested_action="Migration is already running; call run_migration_pass()",
    )


class MigrationNotStartedError(PhaseGateError):
    """Raised when a migration pass is run before start_migration()."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="MIGRATION_NOT_STARTED",
        category="gate",
        suggested_action="Call start_migration() once approvals are assigned",
    )


class FirstPassIncompleteError(PhaseGateError):
    """Raised when end_migration() is called before a full pass completed."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="FIRST_PASS_INCOMPLETE",
        category="gate",
        suggested_action="Call run_migration_pass() until a pass completes",
    )


class AlreadyClosedError(PhaseGateError):
    """Raised when the migration phase has already been closed."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="ALREADY_CLOSED",
        category="gate",
        suggested_action="The engine is decommissioned; only views remain available",
    )


class InvalidPhaseTransitionError(PhaseGateError):
    """
    Raised when the aggregate is asked to skip or revisit a phase.

    Public operations check their gates first, so seeing this error means an
    event stream was written out of order.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.CRITICAL,
        error_code="INVALID_PHASE_TRANSITION",
        category="state",
        suggested_action="Inspect the engine's event stream for out-of-order events",
    )

    def __init__(
        self,
        *,
        engine_id: UUID,
        current_phase: MigrationPhase,
        target_phase: MigrationPhase,
    ) -> None:
        self.target_phase = target_phase
        super().__init__(
            f"cannot move to {target_phase.value}",
            engine_id=engine_id,
            current_phase=current_phase,
            operation="phase_transition",
        )


# =============================================================================
# Entity errors
# =============================================================================


class EntityError(MigratorError):
    """
    Base class for rejected source entities.

    Attributes:
        identifier: The identifier as supplied by the caller.
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="ENTITY_ERROR",
        category="entity",
        suggested_action="Fix the identifiers supplied to register()",
    )

    def __init__(self, message: str, *, engine_id: UUID, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(message, engine_id=engine_id)


class InvalidEntityError(EntityError):
    """Raised when an identifier is not an address or not a contract account."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="INVALID_ENTITY",
        category="entity",
        suggested_action="Only register deployed contract addresses",
    )

    def __init__(self, *, engine_id: UUID, identifier: str, reason: str) -> None:
        self.reason = reason
        super().__init__(
            f"Invalid entity {identifier!r}: {reason}",
            engine_id=engine_id,
            identifier=identifier,
        )


class DuplicateEntityError(EntityError):
    """Raised when an identifier is already registered or repeated in one call."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="DUPLICATE_ENTITY",
        category="entity",
        suggested_action="Remove identifiers that are already registered",
    )

    def __init__(self, *, engine_id: UUID, identifier: str) -> None:
        super().__init__(
            f"Entity {identifier} is already registered",
            engine_id=engine_id,
            identifier=identifier,
        )


class IndexOutOfRangeError(MigratorError, IndexError):
    """Raised when a pair lookup is outside the registered population."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.WARNING,
        error_code="INDEX_OUT_OF_RANGE",
        category="lookup",
        suggested_action="Use an index below population_size()",
    )

    def __init__(self, *, engine_id: UUID, index: int, population_size: int) -> None:
        self.index = index
        self.population_size = population_size
        super().__init__(
            f"Index {index} is outside the registered population of {population_size}",
            engine_id=engine_id,
        )


# =============================================================================
# Collaborator errors
# =============================================================================


class CollaboratorError(MigratorError):
    """
    Raised when an external collaborator fails in a way the engine cannot absorb.

    Progress committed before the failure is kept; the call can be retried
    once the collaborator recovers.

    Attributes:
        collaborator: Name of the failing collaborator (e.g. "ledger:usdc").
    """

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        error_code="COLLABORATOR_FAILURE",
        category="collaborator",
        suggested_action="Check the collaborator and call the operation again",
    )

    def __init__(self, message: str, *, engine_id: UUID, collaborator: str) -> None:
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}", engine_id=engine_id)


class ProvisioningError(CollaboratorError):
    """Raised when the entity factory fails or returns something that is not an address."""

    _default_classification = ErrorClassification(
        severity=ErrorSeverity.ERROR,
        error_code="PROVISIONING_FAILED",
        category="collaborator",
        suggested_action="Check the entity factory and call deploy_successors() again",
    )

    def __init__(self, message: str, *, engine_id: UUID, index: int) -> None:
        self.index = index
        super().__init__(
            f"provisioning successor {index} failed: {message}",
            engine_id=engine_id,
            collaborator="factory",
        )


__all__ = [
    "ErrorSeverity",
    "ErrorClassification",
    "MigratorError",
    "EventStoreError",
    "OptimisticLockError",
    "AggregateNotFoundError",
    "EventVersionError",
    "UnhandledEventError",
    "EngineNotInitializedError",
    "EngineAlreadyInitializedError",
    "LedgerMismatchError",
    "UnauthorizedCallerError",
    "PhaseGateError",
    "PhaseAlreadyClosedError",
    "RegistrationNotClosedError",
    "DeploymentNotClosedError",
    "AlreadyStartedError",
    "MigrationNotStartedError",
    "FirstPassIncompleteError",
    "AlreadyClosedError",
    "InvalidPhaseTransitionError",
    "EntityError",
    "InvalidEntityError",
    "DuplicateEntityError",
    "IndexOutOfRangeError",
    "CollaboratorError",
    "ProvisioningError",
]
