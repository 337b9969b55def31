"""
The migration engine.

- MigrationEngine: public operations (gates, resumable loops, views)
- MigrationAggregate / MigrationEngineState: event-sourced engine state
- MigrationPhase / PhaseFlag: the phase state machine
- CallCosts / ResourceBudget: per-call budget accounting
- Collaborator protocols and the non-reverting pull
- MigrationErrorLog: outstanding per-entity failures
"""

from relaymigrator.engine.aggregate import MigrationAggregate
from relaymigrator.engine.audit import MigrationErrorLog
from relaymigrator.engine.budget import CallCosts, ResourceBudget
from relaymigrator.engine.collaborators import (
    BalanceLedger,
    ContractInspector,
    EntityFactory,
    KeyDirectory,
    TransferOutcome,
    attempt_pull,
)
from relaymigrator.engine.config import MigrationEngineConfig
from relaymigrator.engine.models import (
    DeploymentProgress,
    EntityPair,
    MigrationStatus,
    PassProgress,
)
from relaymigrator.engine.phases import MigrationPhase, PhaseFlag
from relaymigrator.engine.service import MigrationEngine, normalize_identity
from relaymigrator.engine.state import MigrationEngineState

__all__ = [
    "MigrationEngine",
    "MigrationEngineConfig",
    "MigrationAggregate",
    "MigrationEngineState",
    "MigrationPhase",
    "PhaseFlag",
    "CallCosts",
    "ResourceBudget",
    "EntityFactory",
    "KeyDirectory",
    "BalanceLedger",
    "ContractInspector",
    "TransferOutcome",
    "attempt_pull",
    "DeploymentProgress",
    "PassProgress",
    "EntityPair",
    "MigrationStatus",
    "MigrationErrorLog",
    "normalize_identity",
]
