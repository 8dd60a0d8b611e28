"""
Registry - resolves capability keys to models and tools.

Keys are namespaced by kind: ``/model/<name>`` and ``/tool/<name>``.
A registry is an ordinary object handed to the components that need it.
"""

import logging
import threading
from typing import Any, Callable, Iterable, Optional

from .actions import ActionKind, Capability, FunctionModel, Model, Tool

logger = logging.getLogger(__name__)

MODEL_PREFIX = "/model/"
TOOL_PREFIX = "/tool/"


def model_key(name: str) -> str:
    """Registry key for a model name, e.g. ``openai/gpt-4o`` -> ``/model/openai/gpt-4o``."""
    return name if name.startswith(MODEL_PREFIX) else MODEL_PREFIX + name


def tool_key(name: str) -> str:
    """Registry key for a tool name."""
    return name if name.startswith(TOOL_PREFIX) else TOOL_PREFIX + name


def _key_for(capability: Capability) -> str:
    if capability.kind == ActionKind.MODEL:
        return model_key(capability.name)
    if capability.kind == ActionKind.TOOL:
        return tool_key(capability.name)
    return f"/{capability.kind.value}/{capability.name}"


class Registry:
    """Name-to-capability lookup shared by generate calls."""

    def __init__(self):
        self._actions: dict[str, Capability] = {}
        self._lock = threading.Lock()

    def register(self, capability: Capability, key: Optional[str] = None) -> str:
        """
        Register a capability.

        Args:
            capability: Model or tool to register.
            key: Explicit registry key. Derived from the capability's kind
                and name when omitted.

        Returns:
            The key the capability was registered under.
        """
        key = key or _key_for(capability)
        with self._lock:
            if key in self._actions:
                logger.warning("Replacing registered action '%s'", key)
            self._actions[key] = capability
        logger.debug("Registered action: %s", key)
        return key

    def lookup(self, key: str) -> Optional[Capability]:
        """Get a capability by its full key, or None."""
        return self._actions.get(key)

    def define_model(
        self,
        name: str,
        fn: Optional[Callable[..., Any]] = None,
        stream_fn: Optional[Callable[..., Any]] = None,
        description: str = "",
        metadata: Optional[dict[str, Any]] = None,
    ) -> Model:
        """Register a model backed by plain functions."""
        model = FunctionModel(
            name,
            fn=fn,
            stream_fn=stream_fn,
            description=description,
            metadata=metadata,
        )
        self.register(model)
        return model

    def define_tool(
        self,
        name: str,
        fn: Callable[..., Any],
        description: str = "",
        input_type: Optional[Any] = None,
        input_schema: Optional[dict[str, Any]] = None,
        output_schema: Optional[dict[str, Any]] = None,
    ) -> Tool:
        """Register a tool handler."""
        tool = Tool(
            name,
            fn,
            description=description,
            input_type=input_type,
            input_schema=input_schema,
            output_schema=output_schema,
        )
        self.register(tool)
        return tool

    def tool(
        self,
        name: Optional[str] = None,
        description: str = "",
        input_type: Optional[Any] = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of ``define_tool``; the function is returned unchanged."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.define_tool(
                name or fn.__name__,
                fn,
                description=description,
                input_type=input_type,
            )
            return fn

        return decorator

    def list_actions(self, kind: Optional[ActionKind] = None) -> dict[str, Capability]:
        """Get a copy of registered actions, optionally filtered by kind."""
        with self._lock:
            actions: Iterable[tuple[str, Capability]] = list(self._actions.items())
        return {
            key: action for key, action in actions if kind is None or action.kind == kind
        }

    def __contains__(self, key: str) -> bool:
        return key in self._actions

    def __len__(self) -> int:
        return len(self._actions)
