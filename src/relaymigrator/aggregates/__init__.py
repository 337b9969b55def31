"""Aggregate base classes and the aggregate repository."""

from relaymigrator.aggregates.base import (
    AggregateRoot,
    DeclarativeAggregate,
)
from relaymigrator.aggregates.repository import (
    AggregateRepository,
    TAggregate,
)
from relaymigrator.types import TState

__all__ = [
    "AggregateRoot",
    "AggregateRepository",
    "DeclarativeAggregate",
    "TAggregate",
    "TState",
]
