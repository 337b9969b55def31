"""
In-memory collaborators for tests and dry runs.

These implement the collaborator protocols without any chain access:

- InMemoryLedger: balances, pull approvals and failure injection
- SequentialEntityFactory: deterministic successor addresses
- MutableKeyDirectory: a key that tests can rotate between calls
- StaticContractInspector: a fixed set of contract addresses

Example:
    >>> usdc = InMemoryLedger("usdc")
    >>> usdc.credit(relay, 1_000)
    >>> usdc.approve(relay)
    >>> assert await usdc.pull_transfer(relay, wallet, 1_000)
    >>> assert usdc.balance(wallet) == 1_000
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from eth_utils import to_checksum_address

from relaymigrator.engine.service import normalize_identity


@dataclass(frozen=True)
class TransferRecord:
    """A pull transfer accepted by an InMemoryLedger."""

    source: str
    destination: str
    amount: int


class InMemoryLedger:
    """
    A balance ledger held in memory.

    A pull transfer succeeds only if the source approved the engine and
    holds at least the requested amount. Failures can be injected per
    source to simulate reverting pulls or unreachable balance reads.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._balances: dict[str, int] = defaultdict(int)
        self._approved: set[str] = set()
        self._failing_pulls: dict[str, Exception | None] = {}
        self._failing_reads: dict[str, Exception] = {}
        self.transfers: list[TransferRecord] = []
        self.pull_attempts = 0
        self.balance_reads = 0

    def credit(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"amount must be >= 0, got {amount}")
        self._balances[normalize_identity(account)] += amount

    def balance(self, account: str) -> int:
        """Synchronous balance lookup for assertions."""
        return self._balances.get(normalize_identity(account), 0)

    def approve(self, *accounts: str) -> None:
        """Let the engine pull from each of ``accounts``."""
        for account in accounts:
            self._approved.add(normalize_identity(account))

    def revoke(self, *accounts: str) -> None:
        for account in accounts:
            self._approved.discard(normalize_identity(account))

    def fail_pulls_from(self, account: str, error: Exception | None = None) -> None:
        """
        Make pulls from ``account`` fail.

        With ``error`` the pull raises it; otherwise it returns False.
        """
        self._failing_pulls[normalize_identity(account)] = error

    def fail_reads_of(self, account: str, error: Exception) -> None:
        """Make balance_of(account) raise ``error``."""
        self._failing_reads[normalize_identity(account)] = error

    def heal(self, account: str) -> None:
        """Remove injected failures for ``account``."""
        account = normalize_identity(account)
        self._failing_pulls.pop(account, None)
        self._failing_reads.pop(account, None)

    async def balance_of(self, account: str) -> int:
        account = normalize_identity(account)
        self.balance_reads += 1
        error = self._failing_reads.get(account)
        if error is not None:
            raise error
        return self._balances.get(account, 0)

    async def pull_transfer(self, source: str, destination: str, amount: int) -> bool:
        source = normalize_identity(source)
        destination = normalize_identity(destination)
        self.pull_attempts += 1

        if source in self._failing_pulls:
            error = self._failing_pulls[source]
            if error is not None:
                raise error
            return False
        if source not in self._approved:
            return False
        if self._balances.get(source, 0) < amount:
            return False

        self._balances[source] -= amount
        self._balances[destination] += amount
        self.transfers.append(TransferRecord(source, destination, amount))
        return True

    def __repr__(self) -> str:
        return f"InMemoryLedger({self.name!r}, transfers={len(self.transfers)})"


class SequentialEntityFactory:
    """
    Entity factory returning predictable successor addresses.

    The n-th successor (starting at 1) is ``prefix`` followed by n as a
    zero-padded hex number, checksummed.

    Args:
        prefix: Leading hex digits of every address (without "0x")
        fail_on_call: 1-based call number that raises ``error``
        error: Exception raised by the failing call
        invalid_on_call: 1-based call number that returns a non-address
    """

    def __init__(
        self,
        prefix: str = "5a",
        *,
        fail_on_call: int | None = None,
        error: Exception | None = None,
        invalid_on_call: int | None = None,
    ) -> None:
        if len(prefix) >= 40:
            raise ValueError("prefix must leave room for a counter")
        self._prefix = prefix.lower()
        self._fail_on_call = fail_on_call
        self._error = error or RuntimeError("provisioning reverted")
        self._invalid_on_call = invalid_on_call
        self.calls = 0
        self.keys_used: list[str] = []
        self.provisioned: list[str] = []

    def address_for(self, n: int) -> str:
        width = 40 - len(self._prefix)
        return str(to_checksum_address("0x" + self._prefix + format(n, f"0{width}x")))

    def fail_on(self, call_number: int, error: Exception | None = None) -> None:
        """Make the ``call_number``-th call (1-based, counting all calls) raise."""
        self._fail_on_call = call_number
        if error is not None:
            self._error = error

    def fail_next(self, error: Exception | None = None) -> None:
        self.fail_on(self.calls + 1, error)

    def return_invalid_on(self, call_number: int) -> None:
        self._invalid_on_call = call_number

    async def provision(self, authorization_key: str) -> str:
        self.calls += 1
        if self._fail_on_call == self.calls:
            self._fail_on_call = None
            raise self._error
        if self._invalid_on_call == self.calls:
            self._invalid_on_call = None
            return "not-an-address"

        self.keys_used.append(authorization_key)
        address = self.address_for(len(self.provisioned) + 1)
        self.provisioned.append(address)
        return address


class MutableKeyDirectory:
    """Key directory whose key can be rotated between engine calls."""

    def __init__(self, key: str) -> None:
        self._key = key
        self.reads = 0

    def set_key(self, key: str) -> None:
        self._key = key

    async def current_key(self) -> str:
        self.reads += 1
        return self._key


class StaticContractInspector:
    """
    Contract inspector backed by a fixed set of addresses.

    With ``accept_all=True`` every address counts as a contract.
    """

    def __init__(self, contracts: Iterable[str] = (), *, accept_all: bool = False) -> None:
        self._contracts = {normalize_identity(c) for c in contracts}
        self._accept_all = accept_all
        self.checks = 0

    def add(self, *contracts: str) -> None:
        for contract in contracts:
            self._contracts.add(normalize_identity(contract))

    async def is_contract(self, address: str) -> bool:
        self.checks += 1
        return self._accept_all or normalize_identity(address) in self._contracts


def relay_address(n: int) -> str:
    """Deterministic checksummed address for the n-th test relay."""
    return str(to_checksum_address("0x" + "1e" + format(n, "038x")))


__all__ = [
    "InMemoryLedger",
    "MutableKeyDirectory",
    "SequentialEntityFactory",
    "StaticContractInspector",
    "TransferRecord",
    "relay_address",
]
