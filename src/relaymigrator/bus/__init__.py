"""Event bus for delivering committed engine events to subscribers."""

from relaymigrator.bus.interface import EventBus, EventHandlerFunc
from relaymigrator.bus.memory import EventSubscriber, InMemoryEventBus

__all__ = [
    "EventBus",
    "EventHandlerFunc",
    "EventSubscriber",
    "InMemoryEventBus",
]
