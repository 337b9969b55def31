"""Configuration for MigrationEngine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from relaymigrator.engine.budget import CallCosts
from relaymigrator.events.migration import ENGINE_AGGREGATE_TYPE


@dataclass(frozen=True)
class MigrationEngineConfig:
    """
    Configuration for a migration engine.

    Attributes:
        costs: Fixed cost of each loop step.
        deployment_margin: Budget a deployment iteration needs before it
            starts. Defaults to ``costs.deployment_margin``; an override may
            only raise it.
        migration_margin: Budget a migration iteration needs before it
            starts. Defaults to the heaviest iteration for the configured
            ledgers; an override may only raise it.
        aggregate_type: Aggregate type the engine's events are stored under.
        publish_events: Publish committed events to the event publisher.
        enable_tracing: Emit OpenTelemetry spans.
        snapshot_threshold: Events between snapshots when the engine has a
            snapshot store; None takes none automatically.

    Example:
        >>> config = MigrationEngineConfig(
        ...     costs=CallCosts(provision=80_000),
        ...     migration_margin=200_000,
        ... )
        >>> config.effective_deployment_margin()
        85000
    """

    costs: CallCosts = field(default_factory=CallCosts)
    deployment_margin: int | None = None
    migration_margin: int | None = None
    aggregate_type: str = ENGINE_AGGREGATE_TYPE
    publish_events: bool = True
    enable_tracing: bool = True
    snapshot_threshold: int | None = 100

    def __post_init__(self) -> None:
        minimum = self.costs.deployment_margin
        if self.deployment_margin is not None and self.deployment_margin < minimum:
            raise ValueError(
                f"deployment_margin must be >= {self.costs.deployment_margin} "
                f"(provision + bookkeeping), got {self.deployment_margin}"
            )
        if self.migration_margin is not None and self.migration_margin < 0:
            raise ValueError(f"migration_margin must be >= 0, got {self.migration_margin}")
        if not self.aggregate_type:
            raise ValueError("aggregate_type must not be empty")
        if self.snapshot_threshold is not None and self.snapshot_threshold < 1:
            raise ValueError(f"snapshot_threshold must be >= 1, got {self.snapshot_threshold}")

    def effective_deployment_margin(self) -> int:
        if self.deployment_margin is not None:
            return self.deployment_margin
        return self.costs.deployment_margin

    def effective_migration_margin(self, balance_type_count: int) -> int:
        """
        Margin for an engine tracking ``balance_type_count`` ledgers.

        Raises:
            ValueError: If an override is below the heaviest iteration
        """
        computed = self.costs.migration_margin(balance_type_count)
        if self.migration_margin is None:
            return computed
        if self.migration_margin < computed:
            raise ValueError(
                f"migration_margin must be >= {computed} for {balance_type_count} "
                f"balance types, got {self.migration_margin}"
            )
        return self.migration_margin

    def to_dict(self) -> dict[str, Any]:
        return {
            "costs": {
                "provision": self.costs.provision,
                "balance_read": self.costs.balance_read,
                "pull_transfer": self.costs.pull_transfer,
                "bookkeeping": self.costs.bookkeeping,
            },
            "deployment_margin": self.deployment_margin,
            "migration_margin": self.migration_margin,
            "aggregate_type": self.aggregate_type,
            "publish_events": self.publish_events,
            "enable_tracing": self.enable_tracing,
            "snapshot_threshold": self.snapshot_threshold,
        }


__all__ = [
    "MigrationEngineConfig",
]
