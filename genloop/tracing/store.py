"""
In-process trace store.

``LocalTraceStore`` is a tracer that keeps spans in memory instead of
exporting them. Spans are buffered per trace until the trace's root span
ends, then the completed trace is published and can be read back with
``get_trace`` or ``list_traces``. Useful for local development and for
inspecting what a generate call did.
"""

import logging
import threading
import time
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Optional

from .tracer import SpanMetadata, Tracer, to_trace_payload

logger = logging.getLogger(__name__)

STATUS_OK = 0
STATUS_ERROR = 2


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SpanRecord:
    """A finished (or running) span."""

    trace_id: str
    span_id: str
    display_name: str
    type: str
    subtype: Optional[str] = None
    path: Optional[str] = None
    parent_span_id: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict)
    input: Any = None
    output: Any = None
    status_code: int = STATUS_OK
    status_message: Optional[str] = None
    start_time: int = 0
    end_time: Optional[int] = None

    @property
    def is_root(self) -> bool:
        return self.parent_span_id is None


@dataclass
class TraceRecord:
    """All spans sharing a trace id."""

    trace_id: str
    display_name: Optional[str] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    spans: dict[str, SpanRecord] = field(default_factory=dict)

    def spans_by_subtype(self, subtype: str) -> list[SpanRecord]:
        """Spans of one subtype in start order."""
        return sorted(
            (s for s in self.spans.values() if s.subtype == subtype),
            key=lambda s: s.start_time,
        )


class LocalTraceStore(Tracer):
    """
    Tracer that records spans in memory.

    A span whose parent is not open in this store (no parent at all, or an
    upstream span from another process) is the local root: when it ends,
    everything buffered for its trace is published.
    """

    def __init__(self, max_traces: int = 100):
        self.max_traces = max_traces
        self._buffer: dict[str, TraceRecord] = {}
        self._traces: "OrderedDict[str, TraceRecord]" = OrderedDict()
        self._open: set[str] = set()
        self._lock = threading.Lock()

    def run_in_span(self, ctx, metadata: SpanMetadata, input, body):
        trace_id = ctx.trace_id or uuid.uuid4().hex
        span = SpanRecord(
            trace_id=trace_id,
            span_id=uuid.uuid4().hex[:16],
            display_name=metadata.name,
            type=metadata.type,
            subtype=metadata.subtype,
            path=metadata.path,
            parent_span_id=ctx.span_id,
            attributes=dict(metadata.attributes),
            input=to_trace_payload(input),
            start_time=_now_ms(),
        )
        with self._lock:
            local_root = span.parent_span_id not in self._open
            self._open.add(span.span_id)

        try:
            result = body(ctx.with_span(trace_id, span.span_id), input)
        except Exception as e:
            span.status_code = STATUS_ERROR
            span.status_message = str(e)
            self._on_end(span, local_root)
            raise
        span.output = to_trace_payload(result)
        self._on_end(span, local_root)
        return result

    def _on_end(self, span: SpanRecord, local_root: bool) -> None:
        span.end_time = _now_ms()
        with self._lock:
            self._open.discard(span.span_id)
            trace = self._buffer.get(span.trace_id)
            if trace is None:
                trace = self._buffer[span.trace_id] = TraceRecord(trace_id=span.trace_id)
            trace.spans[span.span_id] = span

            if local_root:
                trace.display_name = span.display_name
                trace.start_time = span.start_time
                trace.end_time = span.end_time
                del self._buffer[span.trace_id]
                self._store(trace)
                logger.debug(
                    "Stored completed trace %s with %d spans",
                    trace.trace_id,
                    len(trace.spans),
                )

    def _store(self, trace: TraceRecord) -> None:
        # Several local roots can share an upstream trace id.
        existing = self._traces.get(trace.trace_id)
        if existing is not None and existing is not trace:
            existing.spans.update(trace.spans)
            existing.display_name = existing.display_name or trace.display_name
            existing.start_time = existing.start_time or trace.start_time
            existing.end_time = trace.end_time or existing.end_time
            trace = existing
        self._traces[trace.trace_id] = trace
        self._traces.move_to_end(trace.trace_id)
        while len(self._traces) > self.max_traces:
            self._traces.popitem(last=False)

    def get_trace(self, trace_id: str) -> Optional[TraceRecord]:
        """Get a completed trace by id."""
        with self._lock:
            return self._traces.get(trace_id)

    def list_traces(self) -> list[TraceRecord]:
        """Completed traces, most recent last."""
        with self._lock:
            return list(self._traces.values())

    def flush(self) -> None:
        """Publish traces whose root span has not ended yet."""
        with self._lock:
            for trace in list(self._buffer.values()):
                self._store(trace)
            self._buffer.clear()

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()
            self._traces.clear()
