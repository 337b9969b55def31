"""Unit tests for the collaborator protocols, attempt_pull and the in-memory fakes."""

import pytest

from relaymigrator.engine.collaborators import (
    BalanceLedger,
    ContractInspector,
    EntityFactory,
    KeyDirectory,
    TransferOutcome,
    attempt_pull,
)
from relaymigrator.testing import (
    InMemoryLedger,
    MutableKeyDirectory,
    SequentialEntityFactory,
    StaticContractInspector,
    relay_address,
)

SOURCE = relay_address(1)
DEST = relay_address(99)


class TestProtocols:
    def test_fakes_satisfy_protocols(self):
        assert isinstance(InMemoryLedger("usdc"), BalanceLedger)
        assert isinstance(SequentialEntityFactory(), EntityFactory)
        assert isinstance(MutableKeyDirectory("k"), KeyDirectory)
        assert isinstance(StaticContractInspector(), ContractInspector)


class TestAttemptPull:
    @pytest.mark.asyncio
    async def test_success(self, usdc):
        usdc.credit(SOURCE, 100)
        usdc.approve(SOURCE)

        outcome = await attempt_pull(usdc, SOURCE, DEST, 100)

        assert outcome == TransferOutcome.success()
        assert usdc.balance(DEST) == 100
        assert usdc.balance(SOURCE) == 0

    @pytest.mark.asyncio
    async def test_refused_without_approval(self, usdc):
        usdc.credit(SOURCE, 100)

        outcome = await attempt_pull(usdc, SOURCE, DEST, 100)

        assert not outcome.succeeded
        assert outcome.reason == "transfer refused by ledger"
        assert usdc.balance(SOURCE) == 100

    @pytest.mark.asyncio
    async def test_exception_becomes_failure(self, usdc):
        usdc.credit(SOURCE, 100)
        usdc.approve(SOURCE)
        usdc.fail_pulls_from(SOURCE, RuntimeError("execution reverted"))

        outcome = await attempt_pull(usdc, SOURCE, DEST, 100)

        assert not outcome.succeeded
        assert outcome.reason == "RuntimeError: execution reverted"
        assert usdc.balance(SOURCE) == 100

    @pytest.mark.asyncio
    async def test_insufficient_balance_refused(self, usdc):
        usdc.credit(SOURCE, 10)
        usdc.approve(SOURCE)

        outcome = await attempt_pull(usdc, SOURCE, DEST, 11)

        assert not outcome.succeeded


class TestInMemoryLedger:
    @pytest.mark.asyncio
    async def test_addresses_are_case_insensitive(self, usdc):
        usdc.credit(SOURCE.lower(), 5)
        assert await usdc.balance_of(SOURCE) == 5

    @pytest.mark.asyncio
    async def test_read_failure_injection(self, usdc):
        usdc.fail_reads_of(SOURCE, ConnectionError("rpc down"))
        with pytest.raises(ConnectionError):
            await usdc.balance_of(SOURCE)
        usdc.heal(SOURCE)
        assert await usdc.balance_of(SOURCE) == 0

    @pytest.mark.asyncio
    async def test_revoke(self, usdc):
        usdc.credit(SOURCE, 5)
        usdc.approve(SOURCE)
        usdc.revoke(SOURCE)
        assert not await usdc.pull_transfer(SOURCE, DEST, 5)


class TestSequentialEntityFactory:
    @pytest.mark.asyncio
    async def test_addresses_are_distinct_and_recorded(self):
        factory = SequentialEntityFactory()
        first = await factory.provision("k1")
        second = await factory.provision("k2")
        assert first != second
        assert factory.provisioned == [first, second]
        assert factory.keys_used == ["k1", "k2"]

    @pytest.mark.asyncio
    async def test_fail_next(self):
        factory = SequentialEntityFactory()
        factory.fail_next(RuntimeError("boom"))
        with pytest.raises(RuntimeError, match="boom"):
            await factory.provision("k")
        assert await factory.provision("k") == factory.address_for(1)
