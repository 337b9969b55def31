"""
relaymigrator - Phase-gated, resumable migration of relay balances to smart wallets.

This library provides:
- MigrationEngine: registration, deployment and migration gates with
  budget-bounded, resumable loops
- Event-sourced engine state with In-Memory and SQLite event stores
- Snapshot stores (In-Memory and SQLite) that bound replay per call
- In-memory event bus for MigrationError and other engine events
- OpenTelemetry tracing through a pluggable Tracer
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("relay-migrator")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

# Aggregates
from relaymigrator.aggregates.base import AggregateRoot, DeclarativeAggregate
from relaymigrator.aggregates.repository import AggregateRepository

# Event bus
from relaymigrator.bus.interface import EventBus, EventHandlerFunc
from relaymigrator.bus.memory import EventSubscriber, InMemoryEventBus

# Engine
from relaymigrator.engine import (
    BalanceLedger,
    CallCosts,
    ContractInspector,
    DeploymentProgress,
    EntityFactory,
    EntityPair,
    KeyDirectory,
    MigrationAggregate,
    MigrationEngine,
    MigrationEngineConfig,
    MigrationEngineState,
    MigrationErrorLog,
    MigrationPhase,
    MigrationStatus,
    PassProgress,
    PhaseFlag,
    ResourceBudget,
    TransferOutcome,
    attempt_pull,
)

# Events
from relaymigrator.events import (
    ENGINE_AGGREGATE_TYPE,
    BalanceMigrated,
    DeploymentClosed,
    DomainEvent,
    DuplicateEventTypeError,
    EntitiesRegistered,
    EventRegistry,
    EventTypeNotFoundError,
    MigrationClosed,
    MigrationEngineCreated,
    MigrationError,
    MigrationPassCompleted,
    MigrationPassSuspended,
    MigrationStarted,
    RegistrationClosed,
    SuccessorDeployed,
    default_registry,
    get_event_class,
    register_event,
)

# Exceptions
from relaymigrator.exceptions import (
    AggregateNotFoundError,
    AlreadyClosedError,
    AlreadyStartedError,
    CollaboratorError,
    DeploymentNotClosedError,
    DuplicateEntityError,
    EngineAlreadyInitializedError,
    EngineNotInitializedError,
    EntityError,
    ErrorClassification,
    ErrorSeverity,
    EventStoreError,
    EventVersionError,
    FirstPassIncompleteError,
    IndexOutOfRangeError,
    InvalidEntityError,
    InvalidPhaseTransitionError,
    LedgerMismatchError,
    MigrationNotStartedError,
    MigratorError,
    OptimisticLockError,
    PhaseAlreadyClosedError,
    PhaseGateError,
    ProvisioningError,
    RegistrationNotClosedError,
    UnauthorizedCallerError,
    UnhandledEventError,
)

# Decorators
from relaymigrator.handlers import handles

# Observability
from relaymigrator.observability import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

# Stores
from relaymigrator.stores import (
    AppendResult,
    EventPublisher,
    EventStore,
    EventStream,
    ExpectedVersion,
    InMemoryEventStore,
    SQLiteEventStore,
    StoredEvent,
)

# Snapshots
from relaymigrator.snapshots import (
    InMemorySnapshotStore,
    Snapshot,
    SnapshotStore,
    SQLiteSnapshotStore,
)

__all__ = [
    "__version__",
    # Engine
    "MigrationEngine",
    "MigrationEngineConfig",
    "MigrationAggregate",
    "MigrationEngineState",
    "MigrationPhase",
    "PhaseFlag",
    "CallCosts",
    "ResourceBudget",
    "EntityFactory",
    "KeyDirectory",
    "BalanceLedger",
    "ContractInspector",
    "TransferOutcome",
    "attempt_pull",
    "DeploymentProgress",
    "PassProgress",
    "EntityPair",
    "MigrationStatus",
    "MigrationErrorLog",
    # Events
    "DomainEvent",
    "EventRegistry",
    "default_registry",
    "register_event",
    "get_event_class",
    "EventTypeNotFoundError",
    "DuplicateEventTypeError",
    "ENGINE_AGGREGATE_TYPE",
    "MigrationEngineCreated",
    "EntitiesRegistered",
    "RegistrationClosed",
    "SuccessorDeployed",
    "DeploymentClosed",
    "MigrationStarted",
    "BalanceMigrated",
    "MigrationError",
    "MigrationPassSuspended",
    "MigrationPassCompleted",
    "MigrationClosed",
    # Aggregates
    "AggregateRoot",
    "DeclarativeAggregate",
    "AggregateRepository",
    "handles",
    # Stores
    "EventStore",
    "EventStream",
    "StoredEvent",
    "AppendResult",
    "ExpectedVersion",
    "EventPublisher",
    "InMemoryEventStore",
    "SQLiteEventStore",
    # Snapshots
    "Snapshot",
    "SnapshotStore",
    "InMemorySnapshotStore",
    "SQLiteSnapshotStore",
    # Bus
    "EventBus",
    "EventHandlerFunc",
    "EventSubscriber",
    "InMemoryEventBus",
    # Observability
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Exceptions
    "MigratorError",
    "ErrorSeverity",
    "ErrorClassification",
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
