"""
Tracing for generate calls.

Provides the ``Tracer`` interface used by the generate loop, a Langfuse
backed implementation, and an in-memory trace store.
"""

from .client import (
    TracingClient,
    init_tracing_client,
    get_tracing_client,
    shutdown_tracing,
)
from .tracer import (
    FLOW_NAME_ATTRIBUTE,
    STEP_NAME_ATTRIBUTE,
    TURN_ATTRIBUTE,
    LangfuseTracer,
    NoopTracer,
    SpanMetadata,
    Tracer,
)
from .store import LocalTraceStore, SpanRecord, TraceRecord

__all__ = [
    "TracingClient",
    "init_tracing_client",
    "get_tracing_client",
    "shutdown_tracing",
    "FLOW_NAME_ATTRIBUTE",
    "STEP_NAME_ATTRIBUTE",
    "TURN_ATTRIBUTE",
    "LangfuseTracer",
    "NoopTracer",
    "SpanMetadata",
    "Tracer",
    "LocalTraceStore",
    "SpanRecord",
    "TraceRecord",
]
