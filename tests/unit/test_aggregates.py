"""
Unit tests for DeclarativeAggregate and AggregateRepository.

Uses a small ledger-entry aggregate so the base classes are exercised
independently of the migration engine.
"""

from uuid import uuid4

import pytest
from pydantic import BaseModel

from relaymigrator.aggregates import AggregateRepository, DeclarativeAggregate
from relaymigrator.events import DomainEvent
from relaymigrator.exceptions import (
    AggregateNotFoundError,
    EventVersionError,
    OptimisticLockError,
    UnhandledEventError,
)
from relaymigrator.handlers import handles
from relaymigrator.stores.in_memory import InMemoryEventStore


class Opened(DomainEvent):
    aggregate_type: str = "Tally"


class Counted(DomainEvent):
    aggregate_type: str = "Tally"
    amount: int


class Stray(DomainEvent):
    aggregate_type: str = "Tally"


class TallyState(BaseModel):
    total: int = 0
    entries: int = 0


class Tally(DeclarativeAggregate[TallyState]):
    aggregate_type = "Tally"
    unregistered_event_handling = "error"

    def _get_initial_state(self) -> TallyState:
        return TallyState()

    def open(self) -> None:
        self._raise_event(
            Opened(aggregate_id=self.aggregate_id, aggregate_version=self.get_next_version())
        )

    def count(self, amount: int) -> None:
        self._raise_event(
            Counted(
                aggregate_id=self.aggregate_id,
                aggregate_version=self.get_next_version(),
                amount=amount,
            )
        )

    @handles(Opened)
    def _on_opened(self, event: Opened) -> None:
        pass

    @handles(Counted)
    def _on_counted(self, event: Counted) -> None:
        assert self._state is not None
        self._state = self._state.model_copy(
            update={"total": self._state.total + event.amount, "entries": self._state.entries + 1}
        )


class LenientTally(Tally):
    unregistered_event_handling = "ignore"


class RecordingPublisher:
    def __init__(self) -> None:
        self.batches: list[list[DomainEvent]] = []

    async def publish(self, events: list[DomainEvent]) -> None:
        self.batches.append(list(events))


@pytest.fixture
def repository(in_memory_store: InMemoryEventStore) -> AggregateRepository[Tally]:
    return AggregateRepository(
        event_store=in_memory_store,
        aggregate_factory=Tally,
        aggregate_type="Tally",
        enable_tracing=False,
    )


class TestDeclarativeAggregate:
    def test_handlers_discovered(self):
        assert Tally._event_handlers == {Opened: "_on_opened", Counted: "_on_counted"}

    def test_raise_event_applies_and_tracks(self):
        tally = Tally(uuid4())
        tally.open()
        tally.count(3)
        tally.count(4)

        assert tally.version == 3
        assert tally.state == TallyState(total=7, entries=2)
        assert len(tally.uncommitted_events) == 3

    def test_version_gap_rejected(self):
        tally = Tally(uuid4())
        with pytest.raises(EventVersionError):
            tally.apply_event(Opened(aggregate_id=tally.aggregate_id, aggregate_version=2))

    def test_unhandled_event_in_strict_mode(self):
        tally = Tally(uuid4())
        with pytest.raises(UnhandledEventError) as exc_info:
            tally.apply_event(Stray(aggregate_id=tally.aggregate_id))
        assert "Counted" in exc_info.value.available_handlers

    def test_unhandled_event_ignored_when_lenient(self):
        tally = LenientTally(uuid4())
        tally.apply_event(Stray(aggregate_id=tally.aggregate_id))
        assert tally.version == 1

    def test_load_from_history_leaves_nothing_uncommitted(self):
        source = Tally(uuid4())
        source.open()
        source.count(5)

        replayed = Tally(source.aggregate_id)
        replayed.load_from_history(source.uncommitted_events)

        assert replayed.version == 2
        assert replayed.state == source.state
        assert not replayed.has_uncommitted_events


class TestAggregateRepository:
    @pytest.mark.asyncio
    async def test_save_and_load(self, repository):
        tally = repository.create_new(uuid4())
        tally.open()
        tally.count(2)
        await repository.save(tally)

        assert not tally.has_uncommitted_events
        loaded = await repository.load(tally.aggregate_id)
        assert loaded.version == 2
        assert loaded.state.total == 2
        assert await repository.exists(tally.aggregate_id)

    @pytest.mark.asyncio
    async def test_load_missing(self, repository):
        aggregate_id = uuid4()
        with pytest.raises(AggregateNotFoundError) as exc_info:
            await repository.load(aggregate_id)
        assert exc_info.value.aggregate_id == aggregate_id
        assert not await repository.exists(aggregate_id)

    @pytest.mark.asyncio
    async def test_save_without_changes_is_noop(self, repository, in_memory_store):
        await repository.save(repository.create_new(uuid4()))
        assert await in_memory_store.get_event_count() == 0

    @pytest.mark.asyncio
    async def test_concurrent_writers_conflict(self, repository):
        tally = repository.create_new(uuid4())
        tally.open()
        await repository.save(tally)

        first = await repository.load(tally.aggregate_id)
        second = await repository.load(tally.aggregate_id)
        first.count(1)
        second.count(2)
        await repository.save(first)

        with pytest.raises(OptimisticLockError):
            await repository.save(second)
        assert (await repository.load(tally.aggregate_id)).state.total == 1

    @pytest.mark.asyncio
    async def test_publishes_after_append(self, in_memory_store):
        publisher = RecordingPublisher()
        repository = AggregateRepository(
            event_store=in_memory_store,
            aggregate_factory=Tally,
            aggregate_type="Tally",
            event_publisher=publisher,
            enable_tracing=False,
        )
        tally = repository.create_new(uuid4())
        tally.open()
        tally.count(1)
        await repository.save(tally)

        assert len(publisher.batches) == 1
        assert [type(e) for e in publisher.batches[0]] == [Opened, Counted]
