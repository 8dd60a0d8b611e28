"""
Tool execution for the generate loop.

Resolves the tools a model asked for and runs them one after another.
Failures are contained: an unknown tool or a raising handler becomes an
error-shaped ``ToolResponse`` that is fed back to the model, never an
exception raised to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..actions import Tool, to_plain
from ..context import ActionContext
from ..registry import Registry, tool_key
from ..schemas import Part, ToolRequest, ToolResponse
from ..tracing import NoopTracer, SpanMetadata, Tracer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolOutcome:
    """Result of one tool request: an output or an error message."""

    ref: Optional[str]
    name: str
    output: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_part(self) -> Part:
        """The ``tool_response`` part sent back to the model."""
        output = self.output if self.ok else {"error": self.error}
        return Part(tool_response=ToolResponse(ref=self.ref, name=self.name, output=output))


class ToolExecutor:
    """Resolves and runs tool requests with failure containment."""

    def __init__(self, registry: Registry, tracer: Optional[Tracer] = None):
        self.registry = registry
        self.tracer = tracer or NoopTracer()

    def resolve(
        self, name: str, allowed: Optional[Sequence[str]] = None
    ) -> Optional[Tool]:
        """
        Find the tool for ``name``.

        Looks up the normalized key first. If that fails and an allow-list
        was given, retries against every allow-list entry whose name or
        normalized key matches.

        Returns:
            The tool, or None when nothing that is a Tool resolves.
        """
        key = tool_key(name)
        capability = self.registry.lookup(key)
        if isinstance(capability, Tool):
            return capability

        for allowed_name in allowed or ():
            allowed_key = tool_key(allowed_name)
            if allowed_key == key or allowed_name == name:
                capability = self.registry.lookup(allowed_key)
                if isinstance(capability, Tool):
                    return capability
        return None

    def execute(
        self,
        ctx: ActionContext,
        tool_request_parts: Sequence[Part],
        allowed: Optional[Sequence[str]] = None,
    ) -> list[Part]:
        """
        Run each requested tool in order.

        Args:
            ctx: Context of the current turn.
            tool_request_parts: Parts carrying ``tool_request``s.
            allowed: Tool names supplied with the generate request.

        Returns:
            One ``tool_response`` part per request, in the same order and
            with the same ``ref``.
        """
        return [
            self.run_request(ctx, part.tool_request, allowed).to_part()
            for part in tool_request_parts
            if part.tool_request is not None
        ]

    def run_request(
        self,
        ctx: ActionContext,
        request: ToolRequest,
        allowed: Optional[Sequence[str]] = None,
    ) -> ToolOutcome:
        """Resolve and run a single request. Never raises."""
        tool = self.resolve(request.name, allowed)
        if tool is None:
            logger.warning("Tool not found: %s", request.name)
            return ToolOutcome(
                ref=request.ref,
                name=request.name,
                error=f"Tool not found: {request.name}",
            )

        metadata = SpanMetadata(
            name=tool.name,
            type="action",
            subtype="tool",
            path=tool_key(tool.name),
        )
        try:
            output = self.tracer.run_in_span(
                ctx,
                metadata,
                request.input,
                lambda span_ctx, raw: tool.run(span_ctx, raw),
            )
        except Exception as e:
            logger.error("Tool execution failed for '%s': %s", request.name, e)
            return ToolOutcome(
                ref=request.ref,
                name=request.name,
                error=f"Tool execution failed: {e}",
            )

        logger.debug("Executed tool '%s' successfully", request.name)
        return ToolOutcome(ref=request.ref, name=request.name, output=to_plain(output))
