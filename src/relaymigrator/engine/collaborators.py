"""
Interfaces of the external collaborators.

The engine never holds funds and never creates accounts itself. It reaches
the outside world only through these protocols:

- EntityFactory provisions one successor per call.
- KeyDirectory returns the authorization key current at call time.
- BalanceLedger reads balances and performs pull transfers (one per
  tracked balance type).
- ContractInspector tells whether an address is a deployed contract.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from relaymigrator.types import Address, Amount, AuthorizationKey

logger = logging.getLogger(__name__)


@runtime_checkable
class EntityFactory(Protocol):
    """Provisions successor entities. A call either returns an address or raises."""

    async def provision(self, authorization_key: AuthorizationKey) -> Address: ...


@runtime_checkable
class KeyDirectory(Protocol):
    """Read-only source of the current authorization key."""

    async def current_key(self) -> AuthorizationKey: ...


@runtime_checkable
class BalanceLedger(Protocol):
    """
    One balance type's ledger.

    ``pull_transfer`` debits ``source`` on behalf of the engine and only
    succeeds if the source approved the engine beforehand. It reports
    failure by returning False or by raising.
    """

    async def balance_of(self, account: Address) -> Amount: ...

    async def pull_transfer(
        self, source: Address, destination: Address, amount: Amount
    ) -> bool: ...


@runtime_checkable
class ContractInspector(Protocol):
    """Answers whether an address holds deployed contract code."""

    async def is_contract(self, address: Address) -> bool: ...


@dataclass(frozen=True)
class TransferOutcome:
    """
    Result of a non-reverting pull transfer.

    Attributes:
        succeeded: Whether the ledger accepted the transfer.
        reason: Why it failed; None on success.
    """

    succeeded: bool
    reason: str | None = None

    @classmethod
    def success(cls) -> TransferOutcome:
        return cls(succeeded=True)

    @classmethod
    def failure(cls, reason: str) -> TransferOutcome:
        return cls(succeeded=False, reason=reason)


async def attempt_pull(
    ledger: BalanceLedger,
    source: Address,
    destination: Address,
    amount: Amount,
) -> TransferOutcome:
    """
    Attempt a pull transfer without letting a failure escape.

    A refused transfer and an exception raised by the ledger both become a
    failed outcome, so one entity cannot abort a whole pass.
    """
    try:
        accepted = await ledger.pull_transfer(source, destination, amount)
    except Exception as e:
        logger.debug(
            "Pull transfer from %s raised %s",
            source,
            type(e).__name__,
            exc_info=True,
            extra={"source": source, "destination": destination, "amount": amount},
        )
        return TransferOutcome.failure(f"{type(e).__name__}: {e}")

    if not accepted:
        return TransferOutcome.failure("transfer refused by ledger")
    return TransferOutcome.success()


__all__ = [
    "BalanceLedger",
    "ContractInspector",
    "EntityFactory",
    "KeyDirectory",
    "TransferOutcome",
    "attempt_pull",
]
