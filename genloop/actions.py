"""
Capabilities that can be registered and resolved by name.

``Model`` and ``Tool`` form the closed set of capability variants the
generate loop works with. Plugins subclass ``Model`` (or wrap plain
functions in ``FunctionModel``) and wrap tool handlers in ``Tool``.
"""

import inspect
import logging
import typing
from abc import ABC, abstractmethod
from collections.abc import Mapping
from enum import Enum
from typing import Any, Callable, Iterable, Optional

from pydantic import PydanticSchemaGenerationError, TypeAdapter
from pydantic_core import PydanticSerializationError

from .context import ActionContext
from .schemas import ModelRequest, ModelResponse, ModelResponseChunk, ToolDefinition
from .streaming import ChunkCallback, StreamingRelay

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    """Kind of a registered capability."""

    MODEL = "model"
    TOOL = "tool"
    UTIL = "util"


class Capability:
    """A named, pluggable behaviour resolvable through the registry."""

    kind: ActionKind

    def __init__(
        self,
        name: str,
        description: str = "",
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.name = name
        self.description = description
        self.metadata = dict(metadata or {})

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def _accepts_context(fn: Callable) -> bool:
    """Whether ``fn`` takes a second positional argument for the context."""
    try:
        params = list(inspect.signature(fn).parameters.values())
    except (TypeError, ValueError):
        return False
    positional = [
        p
        for p in params
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]
    has_varargs = any(p.kind == p.VAR_POSITIONAL for p in params)
    return has_varargs or len(positional) >= 2


class Model(Capability, ABC):
    """
    A generative model.

    Subclasses implement ``generate`` (blocking) and, when
    ``supports_streaming`` is true, ``stream`` which yields chunks of the
    candidate as they become available.
    """

    kind = ActionKind.MODEL
    supports_streaming: bool = False

    @abstractmethod
    def generate(self, ctx: ActionContext, request: ModelRequest) -> ModelResponse:
        """Produce a complete response for ``request``."""

    def stream(
        self, ctx: ActionContext, request: ModelRequest
    ) -> Iterable[ModelResponseChunk]:
        """Yield response chunks for ``request``."""
        raise NotImplementedError(f"Model '{self.name}' does not support streaming")

    def invoke(self, ctx: ActionContext, request: ModelRequest) -> ModelResponse:
        """Blocking invocation."""
        return self.generate(ctx, request)

    def invoke_streaming(
        self,
        ctx: ActionContext,
        request: ModelRequest,
        on_chunk: ChunkCallback,
    ) -> ModelResponse:
        """
        Streaming invocation.

        Emits chunks to ``on_chunk`` as they arrive and returns the same
        aggregated response ``invoke`` would have produced. Models without
        streaming support fall back to ``invoke`` and emit nothing.
        """
        if not self.supports_streaming:
            return self.invoke(ctx, request)
        return StreamingRelay(on_chunk).relay(self.stream(ctx, request))


ModelFn = Callable[..., ModelResponse]
StreamFn = Callable[..., Iterable[ModelResponseChunk]]


class FunctionModel(Model):
    """
    Model backed by plain functions.

    ``fn(request[, ctx])`` returns a ``ModelResponse``;
    ``stream_fn(request[, ctx])`` yields ``ModelResponseChunk``s. When only
    ``stream_fn`` is given, blocking calls aggregate the stream.
    """

    def __init__(
        self,
        name: str,
        fn: Optional[ModelFn] = None,
        stream_fn: Optional[StreamFn] = None,
        description: str = "",
        metadata: Optional[dict[str, Any]] = None,
    ):
        if fn is None and stream_fn is None:
            raise ValueError(f"Model '{name}' needs fn or stream_fn")
        super().__init__(name, description=description, metadata=metadata)
        self._fn = fn
        self._stream_fn = stream_fn
        self.supports_streaming = stream_fn is not None

    def generate(self, ctx: ActionContext, request: ModelRequest) -> ModelResponse:
        if self._fn is None:
            return StreamingRelay().relay(self.stream(ctx, request))
        if _accepts_context(self._fn):
            return self._fn(request, ctx)
        return self._fn(request)

    def stream(
        self, ctx: ActionContext, request: ModelRequest
    ) -> Iterable[ModelResponseChunk]:
        if self._stream_fn is None:
            return super().stream(ctx, request)
        if _accepts_context(self._stream_fn):
            return self._stream_fn(request, ctx)
        return self._stream_fn(request)


def _is_mapping_type(tp: Any) -> bool:
    """Whether ``tp`` describes a generic key/value input."""
    if tp is Any or tp is dict or tp is Mapping or tp is typing.Mapping:
        return True
    origin = typing.get_origin(tp)
    return origin is dict or origin is Mapping


def _first_param_type(fn: Callable) -> Optional[Any]:
    """Annotation of the first parameter of ``fn``, if any."""
    try:
        hints = typing.get_type_hints(fn)
        params = list(inspect.signature(fn).parameters)
    except (NameError, TypeError, ValueError):
        return None
    if not params:
        return None
    return hints.get(params[0])


class Tool(Capability):
    """
    A callable tool.

    The handler is called as ``fn(input)`` or ``fn(input, ctx)``. When
    ``input_type`` names a concrete (non-mapping) type, mapping inputs
    produced by the model are validated into that type first. If not
    given, ``input_type`` is taken from the handler's first annotation.
    """

    kind = ActionKind.TOOL

    def __init__(
        self,
        name: str,
        fn: Callable[..., Any],
        description: str = "",
        input_type: Optional[Any] = None,
        input_schema: Optional[dict[str, Any]] = None,
        output_schema: Optional[dict[str, Any]] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            name,
            description=description or inspect.getdoc(fn) or "",
            metadata=metadata,
        )
        self.fn = fn
        self.input_type = input_type if input_type is not None else _first_param_type(fn)
        self._takes_context = _accepts_context(fn)

        self._adapter: Optional[TypeAdapter] = None
        if self.input_type is not None and not _is_mapping_type(self.input_type):
            self._adapter = TypeAdapter(self.input_type)

        if input_schema is None and self._adapter is not None:
            input_schema = self._adapter.json_schema()
        self.input_schema = input_schema
        self.output_schema = output_schema

    def definition(self) -> ToolDefinition:
        """The definition advertised to models."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema,
            output_schema=self.output_schema,
        )

    def coerce_input(self, raw: Any) -> Any:
        """Convert a generic mapping input into the declared input type."""
        if self._adapter is not None and isinstance(raw, Mapping):
            return self._adapter.validate_python(dict(raw))
        return raw

    def run(self, ctx: ActionContext, raw_input: Any) -> Any:
        """Invoke the handler. Exceptions propagate to the caller."""
        value = self.coerce_input(raw_input)
        if self._takes_context:
            return self.fn(value, ctx)
        return self.fn(value)


def to_plain(value: Any) -> Any:
    """Turn typed tool outputs (pydantic models, dataclasses) into plain data."""
    if value is None or isinstance(value, (str, int, float, bool, dict, list)):
        return value
    try:
        return TypeAdapter(type(value)).dump_python(value, mode="json")
    except (PydanticSchemaGenerationError, PydanticSerializationError):
        logger.debug("Leaving tool output of type %s as is", type(value).__name__)
        return value
