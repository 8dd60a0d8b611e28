"""
genloop - model/tool generate loop

This package provides:
- Pydantic schemas for messages, parts, requests and responses
- A registry of models and tools
- The generate orchestrator: a bounded model/tool turn loop
- Tool execution with contained failures
- Streaming relay for incremental model output
- Tracing via Langfuse or an in-memory trace store
"""

from .actions import ActionKind, Capability, FunctionModel, Model, Tool
from .app import GenLoop, create_tracer
from .config import Config
from .config_loader import load_config
from .context import ActionContext
from .errors import (
    ConfigurationError,
    GenerateError,
    LimitExceededError,
    ModelResolutionError,
    SerializationError,
)
from .logging_config import configure_logging
from .orchestration import GenerateOrchestrator, GenerateRunResult
from .registry import Registry, model_key, tool_key
from .schemas import (
    Candidate,
    Document,
    FinishReason,
    GenerateRequest,
    GenerationUsage,
    Media,
    Message,
    ModelRequest,
    ModelResponse,
    ModelResponseChunk,
    OutputConfig,
    Part,
    Role,
    ToolDefinition,
    ToolRequest,
    ToolResponse,
)
from .streaming import StreamingRelay
from .tools import ToolExecutor, ToolOutcome

__all__ = [
    "ActionContext",
    "ActionKind",
    "Candidate",
    "Capability",
    "Config",
    "ConfigurationError",
    "Document",
    "FinishReason",
    "FunctionModel",
    "GenLoop",
    "GenerateError",
    "GenerateOrchestrator",
    "GenerateRequest",
    "GenerateRunResult",
    "GenerationUsage",
    "LimitExceededError",
    "Media",
    "Message",
    "Model",
    "ModelRequest",
    "ModelResolutionError",
    "ModelResponse",
    "ModelResponseChunk",
    "OutputConfig",
    "Part",
    "Registry",
    "Role",
    "SerializationError",
    "StreamingRelay",
    "Tool",
    "ToolDefinition",
    "ToolExecutor",
    "ToolOutcome",
    "ToolRequest",
    "ToolResponse",
    "configure_logging",
    "create_tracer",
    "load_config",
    "model_key",
    "tool_key",
]

__version__ = "0.1.0"
