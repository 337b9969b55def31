"""
Test utilities for relaymigrator.

Components:
    InMemoryLedger, SequentialEntityFactory, MutableKeyDirectory,
    StaticContractInspector: in-memory collaborators
    MigrationTestHarness: an engine wired to in-memory infrastructure

Note:
    This module is intended for test code and dry runs only. It should not
    be imported in production code paths.
"""

from relaymigrator.testing.fakes import (
    InMemoryLedger,
    MutableKeyDirectory,
    SequentialEntityFactory,
    StaticContractInspector,
    TransferRecord,
    relay_address,
)
from relaymigrator.testing.harness import (
    DEFAULT_ADMINISTRATOR,
    DEFAULT_BALANCE_TYPES,
    MigrationTestHarness,
)

__all__ = [
    "InMemoryLedger",
    "SequentialEntityFactory",
    "MutableKeyDirectory",
    "StaticContractInspector",
    "TransferRecord",
    "relay_address",
    "MigrationTestHarness",
    "DEFAULT_ADMINISTRATOR",
    "DEFAULT_BALANCE_TYPES",
]
