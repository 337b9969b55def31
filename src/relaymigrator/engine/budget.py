"""
Resource budget for the resumable loops.

Every call to ``deploy_successors`` or ``run_migration_pass`` receives a
budget. Each collaborator call is charged a fixed cost, and a loop suspends
before starting an iteration it might not be able to finish. Because costs
are fixed per operation, splitting work over many small budgets produces the
same results as one unlimited budget.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CallCosts:
    """
    Fixed cost, in budget units, of each step of the engine loops.

    Attributes:
        provision: One call to the entity factory.
        balance_read: One balance query on one ledger.
        pull_transfer: One pull-transfer attempt on one ledger.
        bookkeeping: Recording the outcome of one loop iteration.

    Example:
        >>> costs = CallCosts(provision=50_000, balance_read=3_000)
        >>> costs.migration_margin(balance_type_count=2)
        91000
    """

    provision: int = 50_000
    balance_read: int = 3_000
    pull_transfer: int = 40_000
    bookkeeping: int = 5_000

    def __post_init__(self) -> None:
        for name in ("provision", "balance_read", "pull_transfer", "bookkeeping"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")

    @property
    def deployment_margin(self) -> int:
        """Cost of one deployment iteration: a provision plus bookkeeping."""
        return self.provision + self.bookkeeping

    def migration_margin(self, balance_type_count: int) -> int:
        """
        Cost of the heaviest migration iteration.

        Every ledger is read and pulled from, then the iteration is recorded.
        """
        return balance_type_count * (self.balance_read + self.pull_transfer) + self.bookkeeping


class ResourceBudget:
    """
    Caller-supplied allowance for one engine call.

    Charges saturate at zero. An unlimited budget never runs out but still
    counts what was spent.

    Example:
        >>> budget = ResourceBudget(100_000)
        >>> budget.can_afford(60_000)
        True
        >>> budget.charge(60_000)
        >>> budget.can_afford(60_000)
        False
        >>> budget.remaining
        40000
    """

    def __init__(self, units: int | None) -> None:
        if units is not None and units < 0:
            raise ValueError(f"units must be >= 0, got {units}")
        self._remaining = units
        self._spent = 0

    @classmethod
    def unlimited(cls) -> ResourceBudget:
        return cls(None)

    @property
    def is_unlimited(self) -> bool:
        return self._remaining is None

    @property
    def remaining(self) -> int | None:
        """Units left, or None for an unlimited budget."""
        return self._remaining

    @property
    def spent(self) -> int:
        return self._spent

    def can_afford(self, cost: int) -> bool:
        return self._remaining is None or self._remaining >= cost

    def charge(self, cost: int) -> None:
        if cost < 0:
            raise ValueError(f"cost must be >= 0, got {cost}")
        self._spent += cost
        if self._remaining is not None:
            self._remaining = max(0, self._remaining - cost)

    def __repr__(self) -> str:
        remaining = "unlimited" if self._remaining is None else self._remaining
        return f"ResourceBudget(remaining={remaining}, spent={self._spent})"


__all__ = [
    "CallCosts",
    "ResourceBudget",
]
