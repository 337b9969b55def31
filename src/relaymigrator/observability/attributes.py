"""
Standard span attributes for relaymigrator.

This module defines attribute constants used across all relaymigrator
components for consistent span naming. These follow OpenTelemetry
semantic conventions where applicable.

Example:
    >>> from relaymigrator.observability.attributes import (
    ...     ATTR_ENGINE_ID,
    ...     ATTR_MIGRATION_PHASE,
    ... )
    >>>
    >>> with tracer.span(
    ...     "relaymigrator.engine.register",
    ...     {ATTR_ENGINE_ID: str(engine_id), ATTR_MIGRATION_PHASE: "registration"},
    ... ):
    ...     pass
"""

# =============================================================================
# Aggregate Attributes
# =============================================================================

ATTR_AGGREGATE_ID = "relaymigrator.aggregate.id"
"""Unique identifier for the aggregate instance (UUID string)."""

ATTR_AGGREGATE_TYPE = "relaymigrator.aggregate.type"
"""Type name of the aggregate (e.g., 'MigrationEngine')."""

# =============================================================================
# Event Attributes
# =============================================================================

ATTR_EVENT_ID = "relaymigrator.event.id"
"""Unique identifier for the event (UUID string)."""

ATTR_EVENT_TYPE = "relaymigrator.event.type"
"""Type name of the event (e.g., 'SuccessorDeployed')."""

ATTR_EVENT_COUNT = "relaymigrator.event.count"
"""Number of events in an operation (integer)."""

# =============================================================================
# Version Attributes
# =============================================================================

ATTR_VERSION = "relaymigrator.version"
"""Current version of an aggregate or stream (integer)."""

ATTR_EXPECTED_VERSION = "relaymigrator.expected_version"
"""Expected version for optimistic concurrency (integer)."""

ATTR_FROM_VERSION = "relaymigrator.from_version"
"""Starting version for event retrieval (integer)."""

# =============================================================================
# Snapshot Attributes
# =============================================================================

ATTR_SNAPSHOT_USED = "relaymigrator.snapshot.used"
"""Whether a load started from a snapshot (boolean)."""

ATTR_SNAPSHOT_VERSION = "relaymigrator.snapshot.version"
"""Stream version of the snapshot a load started from (integer)."""

ATTR_EVENTS_REPLAYED = "relaymigrator.events.replayed"
"""Number of events replayed by a load (integer)."""

# =============================================================================
# Handler Attributes
# =============================================================================

ATTR_HANDLER_NAME = "relaymigrator.handler.name"
"""Name of the bus handler processing an event."""

ATTR_HANDLER_COUNT = "relaymigrator.handler.count"
"""Number of handlers an event is dispatched to (integer)."""

ATTR_HANDLER_SUCCESS = "relaymigrator.handler.success"
"""Whether the handler completed without raising (boolean)."""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'sqlite')."""

ATTR_DB_NAME = "db.name"
"""Database name or file path."""

# =============================================================================
# Migration Engine Attributes
# =============================================================================

ATTR_ENGINE_ID = "relaymigrator.engine.id"
"""Identifier of the migration engine (UUID string)."""

ATTR_MIGRATION_PHASE = "relaymigrator.engine.phase"
"""Current phase of the engine (e.g., 'deployment')."""

ATTR_CALLER = "relaymigrator.engine.caller"
"""Identity of the caller driving an engine operation."""

ATTR_POPULATION_SIZE = "relaymigrator.engine.population_size"
"""Number of registered source entities (integer)."""

ATTR_SUCCESSOR_COUNT = "relaymigrator.engine.successor_count"
"""Number of provisioned successor entities (integer)."""

ATTR_CURSOR = "relaymigrator.engine.cursor"
"""Migration cursor at the start of a pass call (integer)."""

ATTR_PASS_NUMBER = "relaymigrator.engine.pass_number"
"""1-based number of the migration pass being run (integer)."""

ATTR_PASS_PROCESSED = "relaymigrator.engine.pass.processed"
"""Pairs processed by one pass call (integer)."""

ATTR_PASS_ERRORS = "relaymigrator.engine.pass.errors"
"""Failed transfers recorded by one pass call (integer)."""

ATTR_PASS_COMPLETED = "relaymigrator.engine.pass.completed"
"""Whether the pass call reached the end of the population (boolean)."""

ATTR_BUDGET_REMAINING = "relaymigrator.budget.remaining"
"""Resource budget units left at the end of a call (integer)."""

ATTR_ENTITY_COUNT = "relaymigrator.engine.entity_count"
"""Number of entities supplied to a registration call (integer)."""

ATTR_ERROR_TYPE = "relaymigrator.error.type"
"""Exception class name recorded on a failed span."""


__all__ = [
    "ATTR_AGGREGATE_ID",
    "ATTR_AGGREGATE_TYPE",
    "ATTR_EVENT_ID",
    "ATTR_EVENT_TYPE",
    "ATTR_EVENT_COUNT",
    "ATTR_VERSION",
    "ATTR_EXPECTED_VERSION",
    "ATTR_FROM_VERSION",
    "ATTR_SNAPSHOT_USED",
    "ATTR_SNAPSHOT_VERSION",
    "ATTR_EVENTS_REPLAYED",
    "ATTR_HANDLER_NAME",
    "ATTR_HANDLER_COUNT",
    "ATTR_HANDLER_SUCCESS",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_ENGINE_ID",
    "ATTR_MIGRATION_PHASE",
    "ATTR_CALLER",
    "ATTR_POPULATION_SIZE",
    "ATTR_SUCCESSOR_COUNT",
    "ATTR_CURSOR",
    "ATTR_PASS_NUMBER",
    "ATTR_PASS_PROCESSED",
    "ATTR_PASS_ERRORS",
    "ATTR_PASS_COMPLETED",
    "ATTR_BUDGET_REMAINING",
    "ATTR_ENTITY_COUNT",
    "ATTR_ERROR_TYPE",
]
