"""Unit tests for the exception hierarchy and error classifications."""

import logging
from uuid import uuid4

import pytest

from relaymigrator.engine import MigrationPhase
from relaymigrator.exceptions import (
    AggregateNotFoundError,
    AlreadyClosedError,
    CollaboratorError,
    DuplicateEntityError,
    ErrorSeverity,
    IndexOutOfRangeError,
    InvalidEntityError,
    MigratorError,
    OptimisticLockError,
    PhaseGateError,
    ProvisioningError,
    UnauthorizedCallerError,
)

ENGINE_ID = uuid4()


class TestClassification:
    @pytest.mark.parametrize(
        "error",
        [
            AlreadyClosedError(
                "already closed",
                engine_id=ENGINE_ID,
                current_phase=MigrationPhase.CLOSED,
                operation="end_migration",
            ),
            DuplicateEntityError(engine_id=ENGINE_ID, identifier="0xabc"),
            InvalidEntityError(engine_id=ENGINE_ID, identifier="x", reason="not an address"),
            UnauthorizedCallerError(ENGINE_ID, "0xabc", "register"),
            IndexOutOfRangeError(engine_id=ENGINE_ID, index=5, population_size=2),
        ],
    )
    def test_caller_mistakes_abort_the_call(self, error):
        assert isinstance(error, MigratorError)
        assert error.classification.aborts_call

    @pytest.mark.parametrize(
        "error",
        [
            CollaboratorError("rpc down", engine_id=ENGINE_ID, collaborator="ledger:usdc"),
            ProvisioningError("reverted", engine_id=ENGINE_ID, index=3),
            OptimisticLockError(ENGINE_ID, 2, 3),
        ],
    )
    def test_infrastructure_failures_do_not(self, error):
        assert not error.classification.aborts_call

    def test_gate_errors_share_a_base(self):
        error = AlreadyClosedError(
            "already closed",
            engine_id=ENGINE_ID,
            current_phase=MigrationPhase.CLOSED,
            operation="run_migration_pass",
        )
        assert isinstance(error, PhaseGateError)
        assert "run_migration_pass" in str(error)
        assert "phase=closed" in str(error)

    def test_severity_log_levels(self):
        assert ErrorSeverity.CRITICAL.log_level == logging.CRITICAL
        assert ErrorSeverity.WARNING.log_level == logging.WARNING


class TestErrorDetails:
    def test_provisioning_error_names_factory(self):
        error = ProvisioningError("reverted", engine_id=ENGINE_ID, index=3)
        assert error.collaborator == "factory"
        assert error.index == 3
        assert isinstance(error, CollaboratorError)
        assert "successor 3" in str(error)

    def test_index_error_is_builtin_index_error(self):
        assert isinstance(
            IndexOutOfRangeError(engine_id=ENGINE_ID, index=5, population_size=2), IndexError
        )

    def test_to_dict(self):
        data = DuplicateEntityError(engine_id=ENGINE_ID, identifier="0xabc").to_dict()
        assert data["error_code"] == "DUPLICATE_ENTITY"
        assert data["engine_id"] == str(ENGINE_ID)
        assert data["classification"]["category"] == "entity"

    def test_str_without_engine(self):
        error = AggregateNotFoundError(ENGINE_ID, "MigrationEngine")
        assert str(error) == f"Aggregate of type MigrationEngine not found: {ENGINE_ID}"
