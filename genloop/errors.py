"""
Error taxonomy for genloop.

Fatal errors derive from ``GenerateError`` and abort a generate call.
Tool failures are never raised to the caller; see
``genloop.tools.executor.ToolOutcome``.
"""

from typing import Optional


class GenerateError(Exception):
    """Standard fatal error raised by a generate call."""


class ConfigurationError(GenerateError):
    """The request is absent or names no model."""


class ModelResolutionError(GenerateError):
    """The model name does not resolve to a registered model."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model


class LimitExceededError(GenerateError):
    """The turn budget ran out while the model was still requesting tools."""

    def __init__(self, max_turns: int):
        super().__init__(f"Max tool execution turns ({max_turns}) exceeded")
        self.max_turns = max_turns


class SerializationError(GenerateError):
    """A document at the JSON boundary could not be parsed or produced."""
