"""
Generate loop.

Drives a bounded multi-turn conversation with a model: invoke the model,
run any tools it asks for, append the tool results to the conversation
and invoke again, until the model answers without requesting tools or
the turn budget runs out.

Per-call flow:
    1. Resolve the model (fatal if missing or not a model)
    2. Build the model request, resolving tool names into definitions
    3. Invoke the model inside a span (streaming when a chunk callback is
       given and the model supports it)
    4. Classify the response: return it, or execute the requested tools
    5. Append [model message, tool message] and go to 3
    6. Fail with LimitExceededError when the budget is exhausted
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from ..actions import Model
from ..context import ActionContext
from ..errors import (
    ConfigurationError,
    GenerateError,
    LimitExceededError,
    ModelResolutionError,
    SerializationError,
)
from ..registry import Registry, model_key
from ..schemas import (
    GenerateRequest,
    Message,
    ModelRequest,
    ModelResponse,
    ModelResponseChunk,
    Part,
    Role,
    ToolDefinition,
)
from ..streaming import ChunkCallback
from ..tools import ToolExecutor
from ..tracing import (
    FLOW_NAME_ATTRIBUTE,
    STEP_NAME_ATTRIBUTE,
    TURN_ATTRIBUTE,
    NoopTracer,
    SpanMetadata,
    Tracer,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TURNS = 5

JsonChunkCallback = Callable[[dict[str, Any]], None]


@dataclass(frozen=True)
class GenerateRunResult:
    """JSON result of a traced generate call with the ids of its root span."""

    result: dict[str, Any]
    trace_id: Optional[str] = None
    span_id: Optional[str] = None


def _dump(value: Any) -> dict[str, Any]:
    return value.model_dump(mode="json", by_alias=True, exclude_none=True)


class GenerateOrchestrator:
    """
    Turn loop between a model and its tools.

    All collaborators are injected; concurrent ``generate`` calls share
    nothing but read-only registry lookups.
    """

    def __init__(
        self,
        registry: Registry,
        tracer: Optional[Tracer] = None,
        tool_executor: Optional[ToolExecutor] = None,
        default_max_turns: Optional[int] = None,
    ):
        self.registry = registry
        self.tracer = tracer or NoopTracer()
        self.tool_executor = tool_executor or ToolExecutor(registry, self.tracer)
        self.default_max_turns = (
            default_max_turns if default_max_turns is not None else DEFAULT_MAX_TURNS
        )

    def generate(
        self,
        ctx: Optional[ActionContext],
        request: Optional[GenerateRequest],
        on_chunk: Optional[ChunkCallback] = None,
    ) -> ModelResponse:
        """
        Run the generate loop.

        Args:
            ctx: Call context (a fresh one is used when None).
            request: What to generate.
            on_chunk: Incremental callback. Enables streaming for models
                that support it.

        Returns:
            The final model response.

        Raises:
            ConfigurationError: The request or its model name is missing.
            ModelResolutionError: The model is not registered.
            LimitExceededError: The model still requested tools after
                ``max_turns`` invocations.
        """
        if request is None:
            raise ConfigurationError("Generate request cannot be None")
        if not request.model:
            raise ConfigurationError("Model name is required")

        ctx = ctx or ActionContext()
        model = self._resolve_model(request.model)
        model_request = self._build_model_request(request)

        max_turns = (
            request.max_turns if request.max_turns is not None else self.default_max_turns
        )
        streaming = on_chunk is not None and model.supports_streaming
        turn = 0

        logger.debug(
            "Generating with model: %s (max_turns=%d, streaming=%s)",
            model_key(request.model),
            max_turns,
            streaming,
        )

        while turn < max_turns:
            response = self._invoke_model(
                ctx, request, model, model_request, turn, on_chunk if streaming else None
            )
            turn += 1

            tool_request_parts = response.message.tool_request_parts
            if not tool_request_parts:
                return response

            if request.return_tool_requests:
                logger.debug(
                    "Returning %d tool requests unexecuted", len(tool_request_parts)
                )
                return response

            if not request.tools:
                logger.info(
                    "Model requested %d tool calls but no tools were supplied; "
                    "returning the response as is",
                    len(tool_request_parts),
                )
                return response

            # The budget is spent: no result of these tools could be observed.
            if turn >= max_turns:
                break

            logger.debug(
                "Turn %d: executing %d tool requests", turn, len(tool_request_parts)
            )
            tool_response_parts = self.tool_executor.execute(
                ctx, tool_request_parts, request.tools
            )
            model_request = self._next_request(
                model_request, response.message, tool_response_parts
            )

        logger.warning("Max tool execution turns (%d) exceeded", max_turns)
        raise LimitExceededError(max_turns)

    def _resolve_model(self, name: str) -> Model:
        key = model_key(name)
        capability = self.registry.lookup(key)
        if capability is None:
            raise ModelResolutionError(f"Model not found: {name} (key: {key})", model=name)
        if not isinstance(capability, Model):
            raise ModelResolutionError(f"Action is not a model: {key}", model=name)
        return capability

    def _build_model_request(self, request: GenerateRequest) -> ModelRequest:
        definitions: list[ToolDefinition] = []
        for name in request.tools or ():
            definition = self._resolve_tool_definition(name)
            if definition is not None:
                definitions.append(definition)

        return ModelRequest(
            messages=request.messages,
            config=request.config,
            tools=tuple(definitions),
            tool_choice=request.tool_choice,
            output=request.output,
            docs=request.docs,
        )

    def _resolve_tool_definition(self, name: str) -> Optional[ToolDefinition]:
        tool = self.tool_executor.resolve(name)
        if tool is None:
            logger.warning("Tool not found: %s", name)
            return None
        return tool.definition()

    @staticmethod
    def _next_request(
        model_request: ModelRequest,
        model_message: Message,
        tool_response_parts: list[Part],
    ) -> ModelRequest:
        """Extend the conversation by the model's message and the tool results."""
        tool_message = Message(role=Role.TOOL, content=tuple(tool_response_parts))
        return model_request.model_copy(
            update={"messages": (*model_request.messages, model_message, tool_message)}
        )

    def _invoke_model(
        self,
        ctx: ActionContext,
        request: GenerateRequest,
        model: Model,
        model_request: ModelRequest,
        turn: int,
        on_chunk: Optional[ChunkCallback],
    ) -> ModelResponse:
        attributes: dict[str, Any] = {TURN_ATTRIBUTE: turn}
        if ctx.flow_name:
            attributes[FLOW_NAME_ATTRIBUTE] = ctx.flow_name
        if request.step_name:
            attributes[STEP_NAME_ATTRIBUTE] = request.step_name

        metadata = SpanMetadata(
            name=request.model,
            type="action",
            subtype="model",
            path=f"/generate/{request.model}",
            attributes=attributes,
        )

        def body(span_ctx: ActionContext, current: ModelRequest) -> ModelResponse:
            if on_chunk is not None:
                return model.invoke_streaming(span_ctx, current, on_chunk)
            return model.invoke(span_ctx, current)

        return self.tracer.run_in_span(ctx, metadata, model_request, body)

    def generate_json(
        self,
        ctx: Optional[ActionContext],
        document: Optional[dict[str, Any]],
        on_chunk: Optional[JsonChunkCallback] = None,
    ) -> dict[str, Any]:
        """
        JSON-boundary variant of ``generate``.

        Parses ``document`` into a ``GenerateRequest``, runs the loop and
        serializes the response. Chunks are serialized before they reach
        ``on_chunk``; a failing chunk callback is logged, not raised.

        Raises:
            SerializationError: The document or response is malformed.
            GenerateError: Any other failure, with the original exception
                as ``__cause__``.
        """
        try:
            request = self._parse_request(document)
            chunk_callback = self._json_chunk_callback(on_chunk)
            response = self.generate(ctx, request, chunk_callback)
            return self._serialize_response(response)
        except GenerateError:
            raise
        except Exception as e:
            raise GenerateError("Failed to process generate request") from e

    def generate_json_traced(
        self,
        ctx: Optional[ActionContext],
        document: Optional[dict[str, Any]],
        on_chunk: Optional[JsonChunkCallback] = None,
    ) -> GenerateRunResult:
        """Run ``generate_json`` inside a ``generate`` util span."""
        ctx = ctx or ActionContext()
        span_ids: dict[str, Optional[str]] = {}

        def body(span_ctx: ActionContext, doc: Optional[dict[str, Any]]) -> dict[str, Any]:
            span_ids["trace_id"] = span_ctx.trace_id
            span_ids["span_id"] = span_ctx.span_id
            return self.generate_json(span_ctx, doc, on_chunk)

        metadata = SpanMetadata(name="generate", type="util", path="/util/generate")
        try:
            result = self.tracer.run_in_span(ctx, metadata, document, body)
        except GenerateError:
            raise
        except Exception as e:
            raise GenerateError(f"Generate action failed: {e}") from e

        return GenerateRunResult(
            result=result,
            trace_id=span_ids.get("trace_id"),
            span_id=span_ids.get("span_id"),
        )

    @staticmethod
    def _parse_request(document: Optional[dict[str, Any]]) -> Optional[GenerateRequest]:
        if document is None:
            return None
        try:
            return GenerateRequest.model_validate(document)
        except ValidationError as e:
            raise SerializationError(f"Invalid generate request: {e}") from e

    @staticmethod
    def _serialize_response(response: ModelResponse) -> dict[str, Any]:
        try:
            return _dump(response)
        except PydanticSerializationError as e:
            raise SerializationError(f"Failed to serialize model response: {e}") from e

    @staticmethod
    def _json_chunk_callback(
        on_chunk: Optional[JsonChunkCallback],
    ) -> Optional[ChunkCallback]:
        if on_chunk is None:
            return None

        def relay(chunk: ModelResponseChunk) -> None:
            try:
                on_chunk(_dump(chunk))
            except Exception:
                logger.exception("Error streaming chunk")

        return relay

    @staticmethod
    def input_schema() -> dict[str, Any]:
        """JSON Schema of the request document accepted by ``generate_json``."""
        return GenerateRequest.model_json_schema(by_alias=True)

    @staticmethod
    def output_schema() -> dict[str, Any]:
        """JSON Schema of the response document produced by ``generate_json``."""
        return ModelResponse.model_json_schema(by_alias=True, mode="serialization")
