"""
GenLoop - convenience entry point.

Wires a registry, a tracer chosen from configuration and a
``GenerateOrchestrator`` together so applications can define models and
tools and call ``generate`` without assembling the pieces themselves.
Without an explicit ``Config`` the YAML/environment configuration from
``genloop.config_loader`` is used.
"""

import logging
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from .actions import Model, Tool
from .config import TRACING_BACKENDS, Config
from .config_loader import load_config
from .context import ActionContext
from .logging_config import configure_logging
from .orchestration import GenerateOrchestrator
from .registry import Registry
from .schemas import (
    Document,
    GenerateRequest,
    Message,
    ModelResponse,
    OutputConfig,
    Part,
    Role,
)
from .streaming import ChunkCallback
from .tracing import (
    LangfuseTracer,
    LocalTraceStore,
    NoopTracer,
    Tracer,
    init_tracing_client,
    shutdown_tracing,
)

logger = logging.getLogger(__name__)


def create_tracer(config: Config) -> Tracer:
    """
    Build the tracer selected by ``config.tracing.backend``.

    Raises:
        ValueError: If the backend is not one of ``TRACING_BACKENDS``.
    """
    backend = config.tracing.backend.lower()
    if backend not in TRACING_BACKENDS:
        raise ValueError(
            f"Unknown tracing backend: {backend} (expected one of {', '.join(TRACING_BACKENDS)})"
        )
    if backend == "local":
        return LocalTraceStore(max_traces=config.tracing.local_max_traces)
    if backend == "none":
        return NoopTracer()
    if backend == "auto" and not config.langfuse.enabled:
        return NoopTracer()

    client = init_tracing_client(config.langfuse)
    if not client.enabled:
        logger.info(f"Langfuse tracing disabled: {client.error}")
    return LangfuseTracer(client)


class GenLoop:
    """
    Registry, tracer and orchestrator bundled together.

    Args:
        config: Settings. Loaded with ``load_config()`` when omitted.
        registry: Registry to use; a fresh one when omitted.
        tracer: Tracer to use; built from ``config`` when omitted.
        setup_logging: Apply ``config.logging`` to the ``logging`` module.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        registry: Optional[Registry] = None,
        tracer: Optional[Tracer] = None,
        setup_logging: bool = False,
    ):
        self.config = config or load_config()
        if setup_logging:
            configure_logging(self.config.logging)
        self.registry = registry or Registry()
        self.tracer = tracer or create_tracer(self.config)
        self.orchestrator = GenerateOrchestrator(
            self.registry,
            tracer=self.tracer,
            default_max_turns=self.config.generate.default_max_turns,
        )
        logger.debug(
            "GenLoop ready (tracer=%s, default_max_turns=%d)",
            type(self.tracer).__name__,
            self.config.generate.default_max_turns,
        )

    def define_model(
        self,
        name: str,
        fn: Optional[Callable[..., Any]] = None,
        stream_fn: Optional[Callable[..., Any]] = None,
        description: str = "",
    ) -> Model:
        return self.registry.define_model(
            name, fn=fn, stream_fn=stream_fn, description=description
        )

    def define_tool(
        self,
        name: str,
        fn: Callable[..., Any],
        description: str = "",
        input_type: Optional[Any] = None,
    ) -> Tool:
        return self.registry.define_tool(
            name, fn, description=description, input_type=input_type
        )

    def tool(self, name: Optional[str] = None, description: str = ""):
        """Decorator registering a function as a tool."""
        return self.registry.tool(name=name, description=description)

    def generate(
        self,
        model: str,
        prompt: Optional[str] = None,
        messages: Iterable[Union[Message, dict]] = (),
        system: Optional[str] = None,
        tools: Optional[Sequence[str]] = None,
        config: Optional[dict[str, Any]] = None,
        output: Optional[OutputConfig] = None,
        docs: Optional[Sequence[Document]] = None,
        return_tool_requests: Optional[bool] = None,
        max_turns: Optional[int] = None,
        on_chunk: Optional[ChunkCallback] = None,
        ctx: Optional[ActionContext] = None,
    ) -> ModelResponse:
        """
        Build a ``GenerateRequest`` and run it.

        ``system`` and ``prompt`` are shorthands for a leading system
        message and a trailing user message around ``messages``.
        """
        history: list[Union[Message, dict]] = []
        if system:
            history.append(Message(role=Role.SYSTEM, content=(Part(text=system),)))
        history.extend(messages)
        if prompt:
            history.append(Message(role=Role.USER, content=(Part(text=prompt),)))

        request = GenerateRequest(
            model=model,
            messages=tuple(history),
            tools=tuple(tools) if tools is not None else None,
            config=config,
            output=output,
            docs=tuple(docs) if docs is not None else None,
            return_tool_requests=return_tool_requests,
            max_turns=max_turns,
        )
        return self.orchestrator.generate(ctx, request, on_chunk)

    def generate_json(
        self,
        document: dict[str, Any],
        on_chunk: Optional[Callable[[dict[str, Any]], None]] = None,
        ctx: Optional[ActionContext] = None,
    ) -> dict[str, Any]:
        return self.orchestrator.generate_json(ctx, document, on_chunk)

    def close(self) -> None:
        """Flush tracing and release the tracing client."""
        self.tracer.flush()
        if isinstance(self.tracer, LangfuseTracer):
            shutdown_tracing()
