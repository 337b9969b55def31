"""
Events recorded by the migration engine.

Replaying these events in order rebuilds the whole engine state. Each class
is registered in the default registry so stores can deserialize it.
"""

from pydantic import Field

from relaymigrator.events.base import DomainEvent
from relaymigrator.events.registry import register_event

ENGINE_AGGREGATE_TYPE = "MigrationEngine"


class MigrationEngineEvent(DomainEvent):
    """Common base for engine events."""

    aggregate_type: str = ENGINE_AGGREGATE_TYPE


@register_event
class MigrationEngineCreated(MigrationEngineEvent):
    """The engine stream was created with its administrator and ledgers."""

    administrator: str
    balance_types: tuple[str, ...] = Field(..., min_length=1)


@register_event
class EntitiesRegistered(MigrationEngineEvent):
    """A batch of source entities was admitted, starting at ``first_index``."""

    entities: tuple[str, ...] = Field(..., min_length=1)
    first_index: int = Field(..., ge=0)


@register_event
class RegistrationClosed(MigrationEngineEvent):
    population_size: int = Field(..., ge=0)


@register_event
class SuccessorDeployed(MigrationEngineEvent):
    """A successor was provisioned for the source at ``index``."""

    index: int = Field(..., ge=0)
    source: str
    successor: str
    authorization_key: str


@register_event
class DeploymentClosed(MigrationEngineEvent):
    successor_count: int = Field(..., ge=0)


@register_event
class MigrationStarted(MigrationEngineEvent):
    pass


@register_event
class BalanceMigrated(MigrationEngineEvent):
    """A pull transfer of one balance type succeeded."""

    index: int = Field(..., ge=0)
    balance_type: str
    source: str
    successor: str
    amount: int = Field(..., gt=0)
    pass_number: int = Field(..., ge=1)


@register_event
class MigrationError(MigrationEngineEvent):
    """
    A pull transfer failed and was skipped.

    The entity is revisited on the next pass. ``reason`` is a short
    description of the failure (a refused transfer or the text of the
    exception the ledger raised).
    """

    index: int = Field(..., ge=0)
    balance_type: str
    source: str
    successor: str
    amount: int = Field(..., gt=0)
    pass_number: int = Field(..., ge=1)
    reason: str


@register_event
class MigrationPassSuspended(MigrationEngineEvent):
    """
    The pass stopped; it resumes at ``cursor`` on the next call.

    ``ledger_position`` is the first balance type not yet attempted for the
    pair at ``cursor``. It is non-zero only when a balance read failed part
    way through a pair.
    """

    pass_number: int = Field(..., ge=1)
    cursor: int = Field(..., ge=0)
    ledger_position: int = Field(default=0, ge=0)


@register_event
class MigrationPassCompleted(MigrationEngineEvent):
    pass_number: int = Field(..., ge=1)
    first_pass: bool


@register_event
class MigrationClosed(MigrationEngineEvent):
    pass


__all__ = [
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
