"""
Execution context passed through a generate call.
"""

from dataclasses import dataclass, replace
from typing import Optional


@dataclass(frozen=True)
class ActionContext:
    """
    Immutable per-call context.

    Carries the enclosing flow name (if any) and the identifiers of the
    current tracing span so that nested spans link to their parent.
    """

    flow_name: Optional[str] = None
    trace_id: Optional[str] = None
    span_id: Optional[str] = None

    def with_span(self, trace_id: Optional[str], span_id: Optional[str]) -> "ActionContext":
        """Derive a context whose parent span is ``span_id``."""
        return replace(self, trace_id=trace_id, span_id=span_id)
