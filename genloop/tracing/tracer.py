"""
Tracers run a unit of work inside an observability span.

The generate loop only relies on ``Tracer.run_in_span``: the body is
handed a derived context and the original input, and whatever it returns
is passed back unchanged. Exceptions propagate after the span is marked
as failed.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from langfuse.types import TraceContext
from pydantic import BaseModel
from pydantic_core import PydanticSerializationError, to_jsonable_python

from ..context import ActionContext
from ..schemas import ModelResponse
from .client import TracingClient, get_tracing_client

logger = logging.getLogger(__name__)

T = TypeVar("T")
SpanBody = Callable[[ActionContext, Any], T]

FLOW_NAME_ATTRIBUTE = "genloop:metadata:flow:name"
STEP_NAME_ATTRIBUTE = "genloop:metadata:step:name"
TURN_ATTRIBUTE = "genloop:turn"


@dataclass
class SpanMetadata:
    """Describes a span: what it is called and what kind of work it wraps."""

    name: str
    type: str = "action"
    subtype: Optional[str] = None
    path: Optional[str] = None
    attributes: dict[str, Any] = field(default_factory=dict)


def to_trace_payload(value: Any) -> Any:
    """
    Render a span input/output as plain JSON-compatible data.

    Values pydantic cannot serialize are rendered with ``repr`` so that
    recording a span never fails on what a tool or model returned.
    """
    if isinstance(value, BaseModel):
        try:
            return value.model_dump(mode="json", by_alias=True, exclude_none=True)
        except PydanticSerializationError as e:
            logger.debug("Falling back to repr in span payload: %s", e)
            return to_jsonable_python(value, by_alias=True, exclude_none=True, fallback=repr)
    return to_jsonable_python(value, fallback=repr)


class Tracer(ABC):
    """Runs work inside spans."""

    @abstractmethod
    def run_in_span(
        self,
        ctx: ActionContext,
        metadata: SpanMetadata,
        input: Any,
        body: SpanBody,
    ) -> Any:
        """Run ``body(derived_ctx, input)`` inside a span and return its result."""

    def flush(self) -> None:
        """Push out any buffered span data."""


class NoopTracer(Tracer):
    """Runs the body directly, in the caller's context."""

    def run_in_span(self, ctx, metadata, input, body):
        return body(ctx, input)


class LangfuseTracer(Tracer):
    """
    Tracer backed by Langfuse observations.

    Model spans become ``generation`` observations (with model name and
    token usage); everything else becomes a ``span``. Parent linking uses
    explicit ``TraceContext`` propagation through ``ActionContext`` so
    nesting is correct regardless of OTEL context state. When the client
    is disabled the body runs untraced.
    """

    def __init__(self, client: Optional[TracingClient] = None):
        self._client = client

    def _langfuse(self):
        client = self._client or get_tracing_client()
        if client is None or not client.enabled:
            return None
        return client.client

    def run_in_span(self, ctx, metadata, input, body):
        langfuse = self._langfuse()
        if langfuse is None:
            return body(ctx, input)

        observation = _Observation(langfuse, metadata, input, ctx)
        observation.start()
        try:
            result = body(observation.child_context(ctx), input)
        except Exception as e:
            observation.set_status("error", str(e))
            observation.end()
            raise
        observation.set_output(result)
        observation.end()
        return result

    def flush(self) -> None:
        client = self._client or get_tracing_client()
        if client is not None:
            client.flush()


@dataclass
class _Observation:
    """One Langfuse observation, entered and exited explicitly."""

    langfuse: Any
    metadata: SpanMetadata
    input: Any
    parent: ActionContext
    _context_manager: Any = field(default=None, repr=False)
    _observation: Any = field(default=None, repr=False)
    _start_time: float = field(default=0.0, repr=False)
    _output: Any = field(default=None, repr=False)
    _usage: Optional[dict] = field(default=None, repr=False)
    _status: str = field(default="success", repr=False)
    _status_message: Optional[str] = field(default=None, repr=False)

    @property
    def is_generation(self) -> bool:
        return self.metadata.subtype == "model"

    def _trace_context(self) -> Optional[TraceContext]:
        if not self.parent.trace_id:
            return None
        if self.parent.span_id:
            return TraceContext(
                trace_id=self.parent.trace_id, parent_span_id=self.parent.span_id
            )
        return TraceContext(trace_id=self.parent.trace_id)

    def start(self) -> None:
        self._start_time = time.time()
        try:
            kwargs: dict[str, Any] = {
                "trace_context": self._trace_context(),
                "as_type": "generation" if self.is_generation else "span",
                "name": self.metadata.name,
                "input": to_trace_payload(self.input),
                "metadata": {
                    "type": self.metadata.type,
                    "subtype": self.metadata.subtype,
                    "path": self.metadata.path,
                    **self.metadata.attributes,
                },
            }
            if self.is_generation:
                kwargs["model"] = self.metadata.name
            self._context_manager = self.langfuse.start_as_current_observation(**kwargs)
            self._observation = self._context_manager.__enter__()
        except Exception as e:
            logger.warning(f"Failed to start span '{self.metadata.name}': {e}")
            self._observation = None

    def child_context(self, ctx: ActionContext) -> ActionContext:
        if self._observation is None:
            return ctx
        trace_id = getattr(self._observation, "trace_id", None) or ctx.trace_id
        span_id = getattr(self._observation, "id", None) or ctx.span_id
        return ctx.with_span(trace_id, span_id)

    def set_output(self, result: Any) -> None:
        try:
            self._output = to_trace_payload(result)
        except Exception as e:
            logger.warning(f"Failed to record output of span '{self.metadata.name}': {e}")
            self._output = None
        if isinstance(result, ModelResponse) and result.usage is not None:
            usage = {
                "input": result.usage.input_tokens,
                "output": result.usage.output_tokens,
                "total": result.usage.total_tokens,
            }
            self._usage = {k: v for k, v in usage.items() if v is not None}

    def set_status(self, status: str, message: Optional[str] = None) -> None:
        self._status = status
        self._status_message = message

    def end(self) -> None:
        if self._observation is None:
            return
        try:
            duration_ms = (time.time() - self._start_time) * 1000
            update_kwargs: dict[str, Any] = {
                "metadata": {"status": self._status, "duration_ms": round(duration_ms, 2)},
            }
            if self._output is not None:
                update_kwargs["output"] = self._output
            if self._status == "error":
                update_kwargs["level"] = "ERROR"
                update_kwargs["status_message"] = self._status_message
            if self._usage and self.is_generation:
                update_kwargs["usage_details"] = self._usage
            self._observation.update(**update_kwargs)
            if self._context_manager:
                self._context_manager.__exit__(None, None, None)
        except Exception as e:
            logger.warning(f"Failed to end span '{self.metadata.name}': {e}")
