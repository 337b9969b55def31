"""
Handler utilities.

- handles: Decorator marking aggregate apply-handlers
- HandlerAdapter: Normalizes sync/async subscribers to one async interface
"""

from relaymigrator.handlers.adapter import HandlerAdapter, get_handler_name
from relaymigrator.handlers.decorators import get_handled_event_type, handles

__all__ = [
    "HandlerAdapter",
    "get_handler_name",
    "handles",
    "get_handled_event_type",
]
