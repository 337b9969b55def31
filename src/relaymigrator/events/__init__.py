"""Event primitives and the events recorded by the migration engine."""

from relaymigrator.events.base import DomainEvent
from relaymigrator.events.migration import (
    ENGINE_AGGREGATE_TYPE,
    BalanceMigrated,
    DeploymentClosed,
    EntitiesRegistered,
    MigrationClosed,
    MigrationEngineCreated,
    MigrationEngineEvent,
    MigrationError,
    MigrationPassCompleted,
    MigrationPassSuspended,
    MigrationStarted,
    RegistrationClosed,
    SuccessorDeployed,
)
from relaymigrator.events.registry import (
    DuplicateEventTypeError,
    EventRegistry,
    EventTypeNotFoundError,
    default_registry,
    get_event_class,
    register_event,
)

__all__ = [
    "DomainEvent",
    "EventRegistry",
    "default_registry",
    "register_event",
    "get_event_class",
    "EventTypeNotFoundError",
    "DuplicateEventTypeError",
    # Engine events
    "ENGINE_AGGREGATE_TYPE",
    "MigrationEngineEvent",
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
]
