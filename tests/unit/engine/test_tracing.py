"""Tests for engine span emission."""

import pytest
from eth_utils import to_checksum_address

from relaymigrator.engine import MigrationEngine, ResourceBudget
from relaymigrator.exceptions import MigrationNotStartedError
from relaymigrator.observability import (
    ATTR_CALLER,
    ATTR_ENGINE_ID,
    ATTR_MIGRATION_PHASE,
    ATTR_PASS_COMPLETED,
    ATTR_PASS_NUMBER,
    ATTR_PASS_PROCESSED,
    MockTracer,
)
from relaymigrator.testing import MigrationTestHarness


@pytest.fixture
def tracer() -> MockTracer:
    return MockTracer()


@pytest.fixture
def traced_engine(harness: MigrationTestHarness, tracer: MockTracer) -> MigrationEngine:
    return MigrationEngine(
        harness.engine_id,
        harness.event_store,
        factory=harness.factory,
        key_directory=harness.key_directory,
        ledgers=harness.ledgers,
        inspector=harness.inspector,
        tracer=tracer,
    )


class TestEngineSpans:
    @pytest.mark.asyncio
    async def test_every_operation_opens_a_span(self, harness, traced_engine, tracer, admin):
        await traced_engine.initialize(admin)
        await traced_engine.register(harness.relays, caller=admin)
        await traced_engine.end_registration(caller=admin)
        await traced_engine.deploy_successors(ResourceBudget.unlimited())
        await traced_engine.start_migration(caller=admin)
        await traced_engine.run_migration_pass()
        await traced_engine.end_migration(caller=admin)

        engine_spans = [n for n in tracer.span_names if n.startswith("relaymigrator.engine.")]
        assert engine_spans == [
            "relaymigrator.engine.initialize",
            "relaymigrator.engine.register",
            "relaymigrator.engine.end_registration",
            "relaymigrator.engine.deploy_successors",
            "relaymigrator.engine.start_migration",
            "relaymigrator.engine.run_migration_pass",
            "relaymigrator.engine.end_migration",
        ]

    @pytest.mark.asyncio
    async def test_repository_spans_share_the_tracer(self, traced_engine, tracer, admin):
        await traced_engine.initialize(admin)
        tracer.clear()

        await traced_engine.status()

        assert tracer.span_names == ["relaymigrator.repository.load"]

    @pytest.mark.asyncio
    async def test_span_attributes(self, harness, traced_engine, tracer, admin):
        await traced_engine.initialize(admin)

        name, attributes = tracer.spans[0]
        assert name == "relaymigrator.engine.initialize"
        assert attributes[ATTR_ENGINE_ID] == str(harness.engine_id)
        assert attributes[ATTR_CALLER] == to_checksum_address(admin)

    @pytest.mark.asyncio
    async def test_failed_gate_still_traced(self, traced_engine, tracer, admin):
        await traced_engine.initialize(admin)
        tracer.clear()

        with pytest.raises(MigrationNotStartedError):
            await traced_engine.run_migration_pass()

        assert tracer.span_names[0] == "relaymigrator.engine.run_migration_pass"

    @pytest.mark.asyncio
    async def test_pass_outcome_recorded_on_span(self, harness, traced_engine, tracer, admin):
        await traced_engine.initialize(admin)
        await traced_engine.register(harness.relays, caller=admin)
        await traced_engine.end_registration(caller=admin)
        await traced_engine.deploy_successors()
        await traced_engine.start_migration(caller=admin)

        await traced_engine.run_migration_pass(ResourceBudget(traced_engine.migration_margin))

        attributes = tracer.attributes_of("relaymigrator.engine.run_migration_pass")
        assert attributes[ATTR_PASS_NUMBER] == 1
        assert attributes[ATTR_PASS_PROCESSED] == 1
        assert attributes[ATTR_PASS_COMPLETED] is False
        assert attributes[ATTR_MIGRATION_PHASE] == "migration"
