"""
Base class for migration engine events.

Every change to a migration engine is recorded as an immutable event. The
event stream is the only durable state: replaying it rebuilds the registry,
the successor list, the phase and the migration cursor.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Self
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DomainEvent(BaseModel):
    """
    Base class for all engine events.

    The ``event_type`` field defaults to the class name, so subclasses only
    declare their payload. A subclass may pin a different name by declaring
    ``event_type: str = "name"``.

    Attributes:
        event_id: Unique identifier for this event instance
        event_type: Name used to look the class up when deserializing
        event_version: Schema version of the payload
        occurred_at: UTC timestamp of when the event was raised
        aggregate_id: ID of the engine the event belongs to
        aggregate_type: Type of aggregate (e.g. "MigrationEngine")
        aggregate_version: Version of the aggregate after this event
        actor_id: Caller identity that triggered the event, if known
        correlation_id: Shared by every event raised in one engine call
        metadata: Free-form metadata

    Example:
        >>> class BalanceMigrated(DomainEvent):
        ...     aggregate_type: str = "MigrationEngine"
        ...     index: int
        ...
        >>> event = BalanceMigrated(aggregate_id=uuid4(), index=0)
        >>> assert event.event_type == "BalanceMigrated"
    """

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4, description="Unique event identifier")
    event_type: str = Field(default="", description="Event type name")
    event_version: int = Field(default=1, ge=1, description="Event schema version")
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When the event occurred (UTC)",
    )

    aggregate_id: UUID = Field(..., description="ID of the aggregate this event belongs to")
    aggregate_type: str = Field(..., description="Type of aggregate")
    aggregate_version: int = Field(
        default=1, ge=1, description="Aggregate version after this event"
    )

    actor_id: str | None = Field(default=None, description="Caller that triggered this event")
    correlation_id: UUID = Field(
        default_factory=uuid4,
        description="ID shared by the events of one engine call",
    )
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional metadata")

    @model_validator(mode="before")
    @classmethod
    def _ensure_event_type(cls, data: Any) -> Any:
        """Fill in event_type when it is missing or empty in the input."""
        if isinstance(data, dict) and not data.get("event_type"):
            field_info = cls.model_fields.get("event_type")
            default = field_info.default if field_info else ""
            data = dict(data)
            data["event_type"] = default or cls.__name__
        return data

    def __str__(self) -> str:
        return (
            f"{self.event_type}(event_id={self.event_id}, "
            f"aggregate_id={self.aggregate_id}, "
            f"version={self.aggregate_version})"
        )

    def with_aggregate_version(self, version: int) -> Self:
        """Copy of this event stamped with ``version``."""
        return self.model_copy(update={"aggregate_version": version})

    def with_metadata(self, **kwargs: Any) -> Self:
        """Create a copy of this event with additional metadata merged in."""
        return self.model_copy(update={"metadata": {**self.metadata, **kwargs}})

    def is_correlated_with(self, event: DomainEvent) -> bool:
        """True if both events were raised by the same engine call."""
        return self.correlation_id == event.correlation_id

    def to_dict(self) -> dict[str, Any]:
        """
        Convert event to a JSON-compatible dictionary.

        UUIDs and datetimes are rendered as strings.
        """
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        Create event from dictionary.

        Raises:
            ValidationError: If data doesn't match the event schema
        """
        return cls.model_validate(data)
