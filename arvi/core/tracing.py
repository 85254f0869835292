"""
Optional OpenTelemetry spans for requests, pipeline passes and commits.

Without the opentelemetry packages installed, or with OTEL_ENABLED off,
start_span yields None and costs nothing.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Optional

from arvi.core.config import settings

try:  # Optional dependency
    from opentelemetry import trace
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
    from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
except ImportError:  # pragma: no cover - tracing stays disabled
    trace = None

SERVICE_NAME = "arvi"


class _TracingState:
    tracer = None
    exporter = None


_state = _TracingState()


def _build_exporter(name: str):
    return InMemorySpanExporter() if name == "memory" else ConsoleSpanExporter()


def setup_tracing(enabled: Optional[bool] = None, exporter_name: Optional[str] = None) -> bool:
    """Install a tracer for this process. Returns whether tracing is active."""
    wanted = settings.OTEL_ENABLED if enabled is None else bool(enabled)
    if trace is None or not wanted:
        _state.tracer = None
        return False

    _state.exporter = _build_exporter(exporter_name or settings.OTEL_EXPORTER)
    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    provider.add_span_processor(SimpleSpanProcessor(_state.exporter))
    _state.tracer = provider.get_tracer(SERVICE_NAME)
    return True


@contextmanager
def start_span(name: str, attributes: Optional[Dict[str, object]] = None):
    if _state.tracer is None:
        yield None
        return
    with _state.tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        yield span


def get_exported_spans():
    """Finished spans, when the in-memory exporter is installed."""
    getter = getattr(_state.exporter, "get_finished_spans", None)
    return list(getter()) if getter else []
