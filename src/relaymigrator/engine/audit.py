"""
Tracking of outstanding per-entity migration failures.

``MigrationErrorLog`` consumes the engine's events and keeps the latest
failure for every (source, balance type) that has not been migrated since.
Operators use it to find the approvals that still need fixing before the
next pass.

Example:
    >>> bus = InMemoryEventBus()
    >>> error_log = MigrationErrorLog()
    >>> bus.subscribe_all(error_log)
    >>> engine = MigrationEngine(..., event_publisher=bus)
    >>> await engine.run_migration_pass()
    >>> for failure in error_log.outstanding():
    ...     print(failure.source, failure.balance_type, failure.reason)
"""

from __future__ import annotations

import logging
from uuid import UUID

from relaymigrator.events.base import DomainEvent
from relaymigrator.events.migration import BalanceMigrated, MigrationError
from relaymigrator.stores.interface import EventStore

logger = logging.getLogger(__name__)


class MigrationErrorLog:
    """
    Outstanding MigrationError records, keyed by (source, balance type).

    A later BalanceMigrated for the same key clears the entry. A later
    MigrationError replaces it, so the entry always holds the most recent
    attempt.

    Args:
        engine_id: Only track events of this engine (all engines when None)
    """

    def __init__(self, engine_id: UUID | None = None) -> None:
        self._engine_id = engine_id
        self._outstanding: dict[tuple[str, str], MigrationError] = {}

    def subscribed_to(self) -> list[type[DomainEvent]]:
        return [MigrationError, BalanceMigrated]

    async def handle(self, event: DomainEvent) -> None:
        if self._engine_id is not None and event.aggregate_id != self._engine_id:
            return

        if isinstance(event, MigrationError):
            self._outstanding[(event.source, event.balance_type)] = event
        elif isinstance(event, BalanceMigrated):
            if self._outstanding.pop((event.source, event.balance_type), None) is not None:
                logger.debug(
                    "Cleared outstanding %s failure for %s",
                    event.balance_type,
                    event.source,
                    extra={"source": event.source, "balance_type": event.balance_type},
                )

    def outstanding(self) -> list[MigrationError]:
        """Outstanding failures, ordered by source index then balance type."""
        return sorted(
            self._outstanding.values(),
            key=lambda e: (e.index, e.balance_type),
        )

    def is_outstanding(self, source: str, balance_type: str) -> bool:
        return (source, balance_type) in self._outstanding

    async def rebuild(self, event_store: EventStore) -> int:
        """
        Rebuild the log from every event in ``event_store``.

        Returns:
            Number of outstanding failures after the rebuild
        """
        self._outstanding.clear()
        async for stored in event_store.read_all():
            if isinstance(stored.event, (MigrationError, BalanceMigrated)):
                await self.handle(stored.event)
        return len(self._outstanding)

    def clear(self) -> None:
        self._outstanding.clear()

    def __len__(self) -> int:
        return len(self._outstanding)


__all__ = [
    "MigrationErrorLog",
]
