"""
Observability utilities for relaymigrator.

Provides the composition-based Tracer abstraction and the standard span
attribute names used across the engine, repository, stores and bus.

Example:
    >>> from relaymigrator.observability import create_tracer
    >>>
    >>> class MyStore:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
    ...         self._enable_tracing = self._tracer.enabled
"""

from relaymigrator.observability.attributes import (
    ATTR_AGGREGATE_ID,
    ATTR_AGGREGATE_TYPE,
    ATTR_BUDGET_REMAINING,
    ATTR_CALLER,
    ATTR_CURSOR,
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_ENGINE_ID,
    ATTR_ENTITY_COUNT,
    ATTR_ERROR_TYPE,
    ATTR_EVENT_COUNT,
    ATTR_EVENT_ID,
    ATTR_EVENT_TYPE,
    ATTR_EVENTS_REPLAYED,
    ATTR_EXPECTED_VERSION,
    ATTR_FROM_VERSION,
    ATTR_HANDLER_COUNT,
    ATTR_HANDLER_NAME,
    ATTR_HANDLER_SUCCESS,
    ATTR_MIGRATION_PHASE,
    ATTR_PASS_NUMBER,
    ATTR_PASS_COMPLETED,
    ATTR_PASS_ERRORS,
    ATTR_PASS_PROCESSED,
    ATTR_POPULATION_SIZE,
    ATTR_SNAPSHOT_USED,
    ATTR_SNAPSHOT_VERSION,
    ATTR_SUCCESSOR_COUNT,
    ATTR_VERSION,
)
from relaymigrator.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    SpanHandle,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracer
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "SpanHandle",
    "create_tracer",
    # Attributes
    "ATTR_AGGREGATE_ID",
    "ATTR_AGGREGATE_TYPE",
    "ATTR_BUDGET_REMAINING",
    "ATTR_CALLER",
    "ATTR_CURSOR",
    "ATTR_DB_NAME",
    "ATTR_DB_SYSTEM",
    "ATTR_ENGINE_ID",
    "ATTR_ENTITY_COUNT",
    "ATTR_ERROR_TYPE",
    "ATTR_EVENT_COUNT",
    "ATTR_EVENT_ID",
    "ATTR_EVENT_TYPE",
    "ATTR_EVENTS_REPLAYED",
    "ATTR_EXPECTED_VERSION",
    "ATTR_FROM_VERSION",
    "ATTR_HANDLER_COUNT",
    "ATTR_HANDLER_NAME",
    "ATTR_HANDLER_SUCCESS",
    "ATTR_MIGRATION_PHASE",
    "ATTR_PASS_NUMBER",
    "ATTR_PASS_COMPLETED",
    "ATTR_PASS_ERRORS",
    "ATTR_PASS_PROCESSED",
    "ATTR_POPULATION_SIZE",
    "ATTR_SNAPSHOT_USED",
    "ATTR_SNAPSHOT_VERSION",
    "ATTR_SUCCESSOR_COUNT",
    "ATTR_VERSION",
]
