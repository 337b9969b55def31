"""Unit tests for EventRegistry and @register_event."""

import pytest

from relaymigrator.events import (
    DomainEvent,
    EventRegistry,
    MigrationError,
    default_registry,
    register_event,
)
from relaymigrator.events.registry import DuplicateEventTypeError, EventTypeNotFoundError


class TestEventRegistry:
    def test_register_and_get(self):
        registry = EventRegistry()

        @register_event(registry=registry)
        class Ping(DomainEvent):
            aggregate_type: str = "Test"

        assert registry.get("Ping") is Ping
        assert "Ping" in registry
        assert len(registry) == 1

    def test_pinned_type_name(self):
        registry = EventRegistry()

        @register_event(registry=registry)
        class Pong(DomainEvent):
            event_type: str = "test.pong"
            aggregate_type: str = "Test"

        assert registry.get("test.pong") is Pong

    def test_explicit_name_override(self):
        registry = EventRegistry()

        @register_event(event_type="custom", registry=registry)
        class Renamed(DomainEvent):
            aggregate_type: str = "Test"

        assert registry.get_or_none("custom") is Renamed
        assert registry.get_or_none("Renamed") is None

    def test_same_class_twice_is_noop(self):
        registry = EventRegistry()

        class Once(DomainEvent):
            aggregate_type: str = "Test"

        registry.register(Once)
        registry.register(Once)
        assert registry.list_types() == ["Once"]

    def test_conflicting_class_rejected(self):
        registry = EventRegistry()

        class First(DomainEvent):
            aggregate_type: str = "Test"

        class Second(DomainEvent):
            aggregate_type: str = "Test"

        registry.register(First, "shared")
        with pytest.raises(DuplicateEventTypeError) as exc_info:
            registry.register(Second, "shared")
        assert exc_info.value.existing_class is First

    def test_unknown_type(self):
        registry = EventRegistry()
        with pytest.raises(EventTypeNotFoundError) as exc_info:
            registry.get("Missing")
        assert "No event class registered as 'Missing'" in str(exc_info.value)

    def test_unregister(self):
        registry = EventRegistry()

        class Gone(DomainEvent):
            aggregate_type: str = "Test"

        registry.register(Gone)
        assert registry.unregister("Gone")
        assert not registry.unregister("Gone")


class TestDefaultRegistry:
    def test_engine_events_registered(self):
        for name in (
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
        ):
            assert name in default_registry

        assert default_registry.get("MigrationError") is MigrationError
