"""Tests for the read-only view accessors."""

import pytest

from relaymigrator.engine import EntityPair, MigrationPhase, PhaseFlag, ResourceBudget
from relaymigrator.exceptions import IndexOutOfRangeError


class TestCounts:
    @pytest.mark.asyncio
    async def test_counts_follow_progress(self, deploying_engine):
        assert await deploying_engine.population_size() == 3
        assert await deploying_engine.successor_count() == 0

        await deploying_engine.deploy_successors(ResourceBudget(55_000))

        assert await deploying_engine.successor_count() == 1


class TestGetPair:
    @pytest.mark.asyncio
    async def test_pair_before_and_after_deployment(self, harness, deploying_engine):
        pair = await deploying_engine.get_pair(1)
        assert pair == EntityPair(index=1, source=harness.relays[1], successor=None)

        await deploying_engine.deploy_successors()

        pair = await deploying_engine.get_pair(1)
        assert pair.successor == harness.factory.provisioned[1]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index", [-1, 3, 100])
    async def test_out_of_range(self, deploying_engine, index):
        with pytest.raises(IndexOutOfRangeError) as exc_info:
            await deploying_engine.get_pair(index)
        assert exc_info.value.population_size == 3
        assert exc_info.value.index == index

    @pytest.mark.asyncio
    async def test_out_of_range_is_an_index_error(self, initialized_engine):
        with pytest.raises(IndexError):
            await initialized_engine.get_pair(0)

    @pytest.mark.asyncio
    async def test_views_survive_close(self, harness, migrating_engine, admin):
        await migrating_engine.run_migration_pass()
        await migrating_engine.end_migration(caller=admin)

        assert await migrating_engine.population_size() == 3
        assert (await migrating_engine.get_pair(2)).source == harness.relays[2]


class TestGetPairs:
    @pytest.mark.asyncio
    async def test_paging(self, harness, deploying_engine):
        page = await deploying_engine.get_pairs(start=1, limit=1)
        assert [p.index for p in page] == [1]
        assert page[0].source == harness.relays[1]

    @pytest.mark.asyncio
    async def test_limit_clamped(self, deploying_engine):
        assert [p.index for p in await deploying_engine.get_pairs(start=2, limit=10)] == [2]
        assert await deploying_engine.get_pairs(start=5) == []

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, deploying_engine):
        with pytest.raises(ValueError):
            await deploying_engine.get_pairs(start=-1)
        with pytest.raises(ValueError):
            await deploying_engine.get_pairs(limit=-1)


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_snapshot(self, harness, migrating_engine):
        harness.fund(10)
        harness.ledgers["weth"].revoke(harness.relays[0])
        await migrating_engine.run_migration_pass()

        status = await migrating_engine.status()

        assert status.engine_id == harness.engine_id
        assert status.phase is MigrationPhase.FIRST_PASS_DONE
        assert status.flags[PhaseFlag.MIGRATION_FIRST_PASS_DONE]
        assert not status.flags[PhaseFlag.MIGRATION_CLOSED]
        assert status.population_size == 3
        assert status.successor_count == 3
        assert status.transfers_succeeded == 5
        assert status.transfers_failed == 1

    @pytest.mark.asyncio
    async def test_to_dict(self, migrating_engine):
        data = (await migrating_engine.status()).to_dict()

        assert data["phase"] == "migration"
        assert data["flags"] == {
            "registration_closed": True,
            "deployment_closed": True,
            "migration_started": True,
            "migration_first_pass_done": False,
            "migration_closed": False,
        }
        assert data["balance_types"] == ["usdc", "weth"]
        assert isinstance(data["engine_id"], str)

    @pytest.mark.asyncio
    async def test_views_have_no_side_effects(self, harness, migrating_engine):
        before = await harness.event_store.get_event_count()
        await migrating_engine.status()
        await migrating_engine.get_pairs()
        await migrating_engine.population_size()
        assert await harness.event_store.get_event_count() == before
