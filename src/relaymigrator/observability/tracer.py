"""
Tracers handed to the engine, repository, stores and bus.

Components never import OpenTelemetry themselves. They take a ``Tracer`` and
open spans through it; ``create_tracer`` picks the OpenTelemetry-backed or
the no-op implementation, and ``MockTracer`` records spans in tests.

Span handles are optional: code that annotates a span guards on it.

    with self._tracer.span("relaymigrator.engine.register", attrs) as span:
        ...
        if span:
            span.set_attribute(ATTR_ENTITY_COUNT, admitted)
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from contextlib import AbstractContextManager
from typing import Any, NamedTuple, Protocol, runtime_checkable

from opentelemetry import trace


@runtime_checkable
class SpanHandle(Protocol):
    """The part of an OpenTelemetry span the library writes to."""

    def set_attribute(self, key: str, value: Any) -> None: ...

    def record_exception(self, exception: BaseException) -> None: ...


@runtime_checkable
class Tracer(Protocol):
    """Opens spans. ``span()`` yields a SpanHandle, or None when nothing records."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[SpanHandle | None]: ...

    @property
    def enabled(self) -> bool: ...


class NullTracer:
    """Tracer used when tracing is switched off. Every span is None."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by ``opentelemetry.trace``.

    Spans go to whatever tracer provider the application configured. Without
    one, the OpenTelemetry API hands out non-recording spans, so enabling
    tracing costs little when nothing is exported.
    """

    def __init__(self, tracer_name: str) -> None:
        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[SpanHandle | None]:
        return self._tracer.start_as_current_span(name, attributes=attributes or {})

    @property
    def enabled(self) -> bool:
        return True


class RecordedSpan(NamedTuple):
    """A span captured by MockTracer. Unpacks as ``(name, attributes)``."""

    name: str
    attributes: dict[str, Any]


class _RecordingSpan:
    def __init__(self, recorded: RecordedSpan, tracer: MockTracer) -> None:
        self._recorded = recorded
        self._tracer = tracer

    def set_attribute(self, key: str, value: Any) -> None:
        self._recorded.attributes[key] = value

    def record_exception(self, exception: BaseException) -> None:
        self._tracer.exceptions.append((self._recorded.name, exception))


class MockTracer:
    """
    Tracer that keeps every span in memory for assertions.

    Attributes set on the yielded handle are merged into the recorded
    span's attributes. Exceptions recorded on a handle are kept in
    ``exceptions`` as ``(span name, exception)`` pairs.

    Example:
        >>> tracer = MockTracer()
        >>> engine = MigrationEngine(engine_id, store, ..., tracer=tracer)
        >>> await engine.run_migration_pass()
        >>> "relaymigrator.engine.run_migration_pass" in tracer.span_names
        True
    """

    def __init__(self) -> None:
        self.spans: list[RecordedSpan] = []
        self.exceptions: list[tuple[str, BaseException]] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Iterator[SpanHandle]:
        recorded = RecordedSpan(name, dict(attributes or {}))
        self.spans.append(recorded)
        yield _RecordingSpan(recorded, self)

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [recorded.name for recorded in self.spans]

    def attributes_of(self, name: str) -> dict[str, Any]:
        """Attributes of the most recent span called ``name``."""
        for recorded in reversed(self.spans):
            if recorded.name == name:
                return recorded.attributes
        raise KeyError(name)

    def clear(self) -> None:
        self.spans.clear()
        self.exceptions.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """OpenTelemetryTracer named ``name`` when enabled, otherwise a NullTracer."""
    return OpenTelemetryTracer(name) if enable_tracing else NullTracer()


__all__ = [
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "RecordedSpan",
    "SpanHandle",
    "Tracer",
    "create_tracer",
]
