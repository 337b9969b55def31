"""Tests for the resumable deployment loop."""

import pytest

from relaymigrator.engine import MigrationEngineConfig, MigrationPhase, ResourceBudget
from relaymigrator.events import DeploymentClosed, SuccessorDeployed
from relaymigrator.exceptions import (
    CollaboratorError,
    PhaseAlreadyClosedError,
    ProvisioningError,
    RegistrationNotClosedError,
)
from relaymigrator.testing import MigrationTestHarness

# Exactly one provisioning iteration (provision + bookkeeping)
ONE_STEP = 55_000


class TestGates:
    @pytest.mark.asyncio
    async def test_requires_registration_closed(self, initialized_engine, harness):
        with pytest.raises(RegistrationNotClosedError):
            await initialized_engine.deploy_successors()
        assert harness.factory.calls == 0

    @pytest.mark.asyncio
    async def test_rejected_once_closed(self, approval_engine, harness):
        calls = harness.factory.calls
        with pytest.raises(PhaseAlreadyClosedError):
            await approval_engine.deploy_successors()
        assert harness.factory.calls == calls

    @pytest.mark.asyncio
    async def test_open_to_any_caller(self, deploying_engine):
        progress = await deploying_engine.deploy_successors(caller="0x" + "99" * 20)
        assert progress.closed


class TestUnlimitedBudget:
    @pytest.mark.asyncio
    async def test_deploys_everything_and_closes(self, deploying_engine, harness):
        progress = await deploying_engine.deploy_successors(ResourceBudget.unlimited())

        assert progress.deployed_this_call == 3
        assert progress.successor_count == 3
        assert progress.population_size == 3
        assert progress.closed
        assert progress.remaining == 0
        status = await deploying_engine.status()
        assert status.phase is MigrationPhase.APPROVAL
        assert [e.successor_count for e in harness.events_of_type(DeploymentClosed)] == [3]

    @pytest.mark.asyncio
    async def test_pairs_are_index_aligned(self, deploying_engine, harness):
        await deploying_engine.deploy_successors()

        pairs = await deploying_engine.get_pairs()
        assert [p.source for p in pairs] == harness.relays
        assert [p.successor for p in pairs] == harness.factory.provisioned

    @pytest.mark.asyncio
    async def test_empty_population_closes_without_provisioning(self):
        harness = MigrationTestHarness(relay_count=0)
        await harness.prepare_deployment()

        progress = await harness.engine.deploy_successors()

        assert progress.closed
        assert progress.deployed_this_call == 0
        assert harness.factory.calls == 0
        assert harness.key_directory.reads == 0


class TestBudgetedDeployment:
    @pytest.mark.asyncio
    async def test_suspends_when_budget_runs_low(self, deploying_engine, harness):
        progress = await deploying_engine.deploy_successors(ResourceBudget(ONE_STEP * 2 + 1))

        assert progress.deployed_this_call == 2
        assert not progress.closed
        assert progress.budget_remaining == 1
        assert await deploying_engine.successor_count() == 2
        assert (await deploying_engine.status()).phase is MigrationPhase.DEPLOYMENT

    @pytest.mark.asyncio
    async def test_budget_below_margin_does_nothing(self, deploying_engine, harness):
        progress = await deploying_engine.deploy_successors(ResourceBudget(ONE_STEP - 1))

        assert progress.deployed_this_call == 0
        assert harness.factory.calls == 0
        assert harness.key_directory.reads == 0

    @pytest.mark.asyncio
    async def test_resumes_from_successor_count(self, deploying_engine, harness):
        calls = 0
        while True:
            calls += 1
            progress = await deploying_engine.deploy_successors(ResourceBudget(ONE_STEP))
            if progress.closed:
                break

        # The call that provisions the last successor also closes
        assert calls == 3
        deployed = harness.events_of_type(SuccessorDeployed)
        assert [e.index for e in deployed] == [0, 1, 2]
        assert [e.source for e in deployed] == harness.relays
        pairs = await deploying_engine.get_pairs()
        assert [p.successor for p in pairs] == harness.factory.provisioned

    @pytest.mark.asyncio
    async def test_closes_in_same_call_as_last_provision(self, deploying_engine):
        await deploying_engine.deploy_successors(ResourceBudget(ONE_STEP * 2))
        progress = await deploying_engine.deploy_successors(ResourceBudget(ONE_STEP))
        assert progress.deployed_this_call == 1
        assert progress.closed

    @pytest.mark.asyncio
    async def test_custom_deployment_margin(self):
        harness = MigrationTestHarness(
            relay_count=2,
            config=MigrationEngineConfig(deployment_margin=100_000),
        )
        await harness.prepare_deployment()

        progress = await harness.engine.deploy_successors(ResourceBudget(99_999))

        assert progress.deployed_this_call == 0


class TestAuthorizationKey:
    @pytest.mark.asyncio
    async def test_key_read_once_per_call(self, deploying_engine, harness):
        await deploying_engine.deploy_successors()

        assert harness.key_directory.reads == 1
        assert harness.factory.keys_used == ["key-1"] * 3

    @pytest.mark.asyncio
    async def test_rotated_key_used_by_later_calls(self, deploying_engine, harness):
        await deploying_engine.deploy_successors(ResourceBudget(ONE_STEP))
        harness.key_directory.set_key("key-2")
        await deploying_engine.deploy_successors()

        assert harness.factory.keys_used == ["key-1", "key-2", "key-2"]
        keys = [e.authorization_key for e in harness.events_of_type(SuccessorDeployed)]
        assert keys == ["key-1", "key-2", "key-2"]

    @pytest.mark.asyncio
    async def test_key_directory_failure(self, deploying_engine, harness, monkeypatch):
        async def broken() -> str:
            raise ConnectionError("registry unreachable")

        monkeypatch.setattr(harness.key_directory, "current_key", broken)

        with pytest.raises(CollaboratorError) as exc_info:
            await deploying_engine.deploy_successors()
        assert exc_info.value.collaborator == "key_directory"
        assert await deploying_engine.successor_count() == 0


class TestProvisioningFailures:
    @pytest.mark.asyncio
    async def test_earlier_successors_are_kept(self, deploying_engine, harness):
        harness.factory.fail_on(3)

        with pytest.raises(ProvisioningError) as exc_info:
            await deploying_engine.deploy_successors()

        assert exc_info.value.index == 2
        assert exc_info.value.collaborator == "factory"
        assert await deploying_engine.successor_count() == 2

        progress = await deploying_engine.deploy_successors()
        assert progress.closed
        pairs = await deploying_engine.get_pairs()
        assert [p.successor for p in pairs] == harness.factory.provisioned

    @pytest.mark.asyncio
    async def test_non_address_result_rejected(self, harness):
        harness.factory.return_invalid_on(1)
        await harness.prepare_deployment()

        with pytest.raises(ProvisioningError, match="not an address"):
            await harness.engine.deploy_successors()
        assert await harness.engine.successor_count() == 0
