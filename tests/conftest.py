"""
Pytest configuration and fixtures for genloop tests.
"""

import pytest

from genloop import (
    ActionContext,
    Model,
    ModelRequest,
    ModelResponse,
    Registry,
)
from genloop.config_loader import reset_config_cache
from genloop.tracing import LocalTraceStore, shutdown_tracing


class ScriptedModel(Model):
    """
    Model that replays scripted responses and records every request.

    The last response repeats once the script runs out. When ``chunks``
    is given the model streams: each invocation yields the chunk list at
    the same position.
    """

    def __init__(self, name, responses, chunks=None):
        super().__init__(name)
        self.responses = list(responses)
        self.chunks = list(chunks) if chunks is not None else None
        self.supports_streaming = chunks is not None
        self.requests: list[ModelRequest] = []
        self.contexts: list[ActionContext] = []
        self.streamed_calls = 0

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def _record(self, ctx, request) -> int:
        self.requests.append(request)
        self.contexts.append(ctx)
        return len(self.requests) - 1

    def generate(self, ctx, request) -> ModelResponse:
        index = self._record(ctx, request)
        return self.responses[min(index, len(self.responses) - 1)]

    def stream(self, ctx, request):
        index = self._record(ctx, request)
        self.streamed_calls += 1
        return iter(self.chunks[min(index, len(self.chunks) - 1)])


@pytest.fixture
def registry():
    """A fresh, empty registry."""
    return Registry()


@pytest.fixture
def trace_store():
    """An in-memory tracer."""
    return LocalTraceStore()


@pytest.fixture
def scripted_model(registry):
    """Factory registering a ScriptedModel under the given name."""

    def factory(name="test/model", responses=(), chunks=None):
        model = ScriptedModel(name, responses, chunks=chunks)
        registry.register(model)
        return model

    return factory


@pytest.fixture(autouse=True)
def reset_global_state():
    """Reset cached configuration and the tracing client around each test."""
    reset_config_cache()
    shutdown_tracing()
    yield
    reset_config_cache()
    shutdown_tracing()
