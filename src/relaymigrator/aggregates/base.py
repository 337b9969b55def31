"""
Event-sourced aggregate base classes.

An aggregate's state changes only by applying events. Commands check their
preconditions against the current state and then raise events; raising an
event applies it at once and queues it for the repository, which persists
the queue in one append.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Generic, Literal, cast, get_args, get_origin
from uuid import UUID

from relaymigrator.events.base import DomainEvent
from relaymigrator.exceptions import EventVersionError, UnhandledEventError
from relaymigrator.handlers.decorators import get_handled_event_type
from relaymigrator.types import TState

UnregisteredEventHandling = Literal["ignore", "warn", "error"]

logger = logging.getLogger(__name__)


class AggregateRoot(Generic[TState], ABC):
    """
    Base class for aggregates rebuilt from their event stream.

    Subclasses implement ``_get_initial_state()`` (the state installed before
    the first event) and ``_apply(event)`` (the state change for one event).

    Attributes:
        aggregate_type: Name of the stream the aggregate lives in
        validate_versions: Reject new events whose aggregate_version does
            not directly follow the current version
        schema_version: Version of the state model. Snapshots taken under a
            different schema_version are ignored and the stream is replayed
    """

    aggregate_type: str = "Unknown"
    validate_versions: bool = True
    schema_version: int = 1

    def __init__(self, aggregate_id: UUID) -> None:
        self._aggregate_id = aggregate_id
        self._version = 0
        self._state: TState | None = None
        self._pending: list[DomainEvent] = []

    @property
    def aggregate_id(self) -> UUID:
        return self._aggregate_id

    @property
    def version(self) -> int:
        """Version after the last applied event (0 before any event)."""
        return self._version

    @property
    def state(self) -> TState | None:
        """Current state, or None until the first event is applied."""
        return self._state

    @property
    def uncommitted_events(self) -> list[DomainEvent]:
        return list(self._pending)

    @property
    def has_uncommitted_events(self) -> bool:
        return bool(self._pending)

    def get_next_version(self) -> int:
        return self._version + 1

    def apply_event(self, event: DomainEvent, is_new: bool = True) -> None:
        """
        Apply one event.

        New events are version-checked and queued for persistence; replayed
        events (``is_new=False``) are applied as stored.

        Raises:
            EventVersionError: If ``is_new`` and the event version does not
                follow the current version while validate_versions is set
        """
        if is_new:
            self._check_version(event)

        if self._state is None:
            self._state = self._get_initial_state()
        self._version = event.aggregate_version
        self._apply(event)

        if is_new:
            self._pending.append(event)

    def _check_version(self, event: DomainEvent) -> None:
        expected = self.get_next_version()
        if event.aggregate_version == expected:
            return
        if self.validate_versions:
            raise EventVersionError(
                expected_version=expected,
                actual_version=event.aggregate_version,
                event_id=event.event_id,
                aggregate_id=self._aggregate_id,
            )
        logger.warning(
            "Applying %s at version %d to %s %s, expected %d",
            event.event_type,
            event.aggregate_version,
            self.aggregate_type,
            self._aggregate_id,
            expected,
            extra={
                "aggregate_id": str(self._aggregate_id),
                "event_id": str(event.event_id),
                "expected_version": expected,
                "actual_version": event.aggregate_version,
            },
        )

    def load_from_history(self, events: list[DomainEvent]) -> None:
        """Replay stored events; nothing is queued for persistence."""
        for event in events:
            self.apply_event(event, is_new=False)

    def mark_events_as_committed(self) -> None:
        """Drop the queue. Called by the repository once the append succeeded."""
        self._pending.clear()

    def _raise_event(self, event: DomainEvent) -> None:
        self.apply_event(event, is_new=True)

    def _serialize_state(self) -> dict[str, Any]:
        """JSON-compatible copy of the state for a snapshot ({} before the first event)."""
        if self._state is None:
            return {}
        return self._state.model_dump(mode="json")

    def _restore_from_snapshot(self, state_dict: dict[str, Any], version: int) -> None:
        """
        Install snapshot state as of ``version``.

        Events after ``version`` are then replayed with load_from_history().

        Raises:
            ValidationError: If state_dict does not fit the state model
        """
        if state_dict:
            self._state = self._get_state_type().model_validate(state_dict)
        self._version = version

    def _get_state_type(self) -> type[TState]:
        """The concrete state model this class parameterizes AggregateRoot with."""
        for klass in type(self).__mro__:
            for base in getattr(klass, "__orig_bases__", ()):
                origin = get_origin(base)
                if not isinstance(origin, type) or not issubclass(origin, AggregateRoot):
                    continue
                args = get_args(base)
                # Skip bases still parameterized by the TState type variable
                if args and isinstance(args[0], type):
                    return cast(type[TState], args[0])
        raise RuntimeError(
            f"Cannot determine state type for {type(self).__name__}; "
            "subclass AggregateRoot[StateType] or DeclarativeAggregate[StateType]"
        )

    @abstractmethod
    def _get_initial_state(self) -> TState: ...

    @abstractmethod
    def _apply(self, event: DomainEvent) -> None: ...

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AggregateRoot):
            return NotImplemented
        return self._aggregate_id == other._aggregate_id

    def __hash__(self) -> int:
        return hash(self._aggregate_id)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self._aggregate_id}, version={self._version}, "
            f"pending={len(self._pending)})"
        )


class DeclarativeAggregate(AggregateRoot[TState], ABC):
    """
    Aggregate whose ``_apply`` dispatches to methods marked with ``@handles``.

    A handler for an event class also receives its subclasses unless a more
    specific handler exists.

    Example:
        >>> class MigrationAggregate(DeclarativeAggregate[MigrationEngineState]):
        ...     unregistered_event_handling = "error"
        ...
        ...     @handles(MigrationStarted)
        ...     def _on_migration_started(self, event: MigrationStarted) -> None:
        ...         ...
    """

    unregistered_event_handling: UnregisteredEventHandling = "ignore"

    _event_handlers: ClassVar[dict[type[DomainEvent], str]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        handlers: dict[type[DomainEvent], str] = {}
        # Base classes first so overrides in subclasses win
        for klass in reversed(cls.__mro__):
            for name, member in vars(klass).items():
                event_type = get_handled_event_type(member)
                if event_type is not None:
                    handlers[event_type] = name
        cls._event_handlers = handlers

    def _apply(self, event: DomainEvent) -> None:
        for klass in type(event).__mro__:
            handler_name = self._event_handlers.get(klass)
            if handler_name is not None:
                getattr(self, handler_name)(event)
                return
        self._on_unhandled(event)

    def _on_unhandled(self, event: DomainEvent) -> None:
        if self.unregistered_event_handling == "error":
            raise UnhandledEventError(
                event_type=type(event).__name__,
                event_id=event.event_id,
                handler_class=type(self).__name__,
                available_handlers=[et.__name__ for et in self._event_handlers],
            )
        if self.unregistered_event_handling == "warn":
            logger.warning(
                "%s has no handler for %s",
                type(self).__name__,
                type(event).__name__,
                extra={"event_type": type(event).__name__, "event_id": str(event.event_id)},
            )


__all__ = [
    "AggregateRoot",
    "DeclarativeAggregate",
    "TState",
    "UnregisteredEventHandling",
]
