"""Tests for the JSON boundary of the generate loop."""

import pytest

from genloop import (
    ActionContext,
    Candidate,
    ConfigurationError,
    GenerateError,
    GenerateOrchestrator,
    LimitExceededError,
    Message,
    ModelResolutionError,
    ModelResponse,
    ModelResponseChunk,
    Part,
    Role,
    SerializationError,
)


def _document(**overrides) -> dict:
    document = {
        "model": "test/model",
        "messages": [{"role": "user", "content": [{"text": "Hello"}]}],
    }
    document.update(overrides)
    return document


def _text_response(text: str) -> ModelResponse:
    return ModelResponse(
        candidates=[
            Candidate(
                message=Message(role=Role.MODEL, content=[Part(text=text)]),
                finish_reason="stop",
            )
        ]
    )


@pytest.fixture
def orchestrator(registry):
    return GenerateOrchestrator(registry)


class TestGenerateJson:
    """Tests for GenerateOrchestrator.generate_json."""

    def test_round_trip(self, scripted_model, orchestrator):
        """A camelCase document produces a camelCase response document."""
        model = scripted_model(responses=[_text_response("Hi there")])

        result = orchestrator.generate_json(
            None, _document(maxTurns=2, returnToolRequests=False, toolChoice="auto")
        )

        assert result == {
            "candidates": [
                {
                    "index": 0,
                    "message": {"role": "model", "content": [{"text": "Hi there"}]},
                    "finishReason": "stop",
                }
            ]
        }
        sent = model.requests[0]
        assert sent.messages[0].text == "Hello"
        assert sent.tool_choice == "auto"

    def test_tool_parts_use_camel_case(self, scripted_model, orchestrator):
        """Tool request parts are serialized as ``toolRequest``."""
        scripted_model(
            responses=[
                ModelResponse(
                    candidates=[
                        Candidate(
                            message=Message(
                                role=Role.MODEL,
                                content=[Part.of_tool_request("lookup", {"q": 1}, ref="r1")],
                            )
                        )
                    ]
                )
            ]
        )

        result = orchestrator.generate_json(None, _document(returnToolRequests=True))

        part = result["candidates"][0]["message"]["content"][0]
        assert part == {"toolRequest": {"ref": "r1", "name": "lookup", "input": {"q": 1}}}

    def test_invalid_document(self, orchestrator):
        """A malformed document raises SerializationError."""
        with pytest.raises(SerializationError, match="Invalid generate request"):
            orchestrator.generate_json(None, _document(messages=[{"role": "narrator"}]))

    def test_negative_max_turns_rejected(self, orchestrator):
        """maxTurns must not be negative."""
        with pytest.raises(SerializationError):
            orchestrator.generate_json(None, _document(maxTurns=-1))

    def test_missing_document(self, orchestrator):
        """A missing document is a configuration error."""
        with pytest.raises(ConfigurationError):
            orchestrator.generate_json(None, None)

    def test_missing_model(self, orchestrator):
        """A document without a model is a configuration error."""
        document = _document()
        del document["model"]
        with pytest.raises(ConfigurationError):
            orchestrator.generate_json(None, document)

    def test_fatal_errors_pass_through(self, orchestrator, scripted_model):
        """GenerateError subclasses are raised as is."""
        with pytest.raises(ModelResolutionError):
            orchestrator.generate_json(None, _document(model="missing"))

        scripted_model(responses=[_text_response("x")])
        with pytest.raises(LimitExceededError):
            orchestrator.generate_json(None, _document(maxTurns=0))

    def test_other_errors_wrapped(self, registry, orchestrator):
        """Unexpected exceptions become GenerateError with the cause attached."""
        cause = RuntimeError("socket closed")

        def broken(request):
            raise cause

        registry.define_model("test/model", broken)

        with pytest.raises(GenerateError) as exc_info:
            orchestrator.generate_json(None, _document())

        assert type(exc_info.value) is GenerateError
        assert str(exc_info.value) == "Failed to process generate request"
        assert exc_info.value.__cause__ is cause

    def test_chunks_serialized_for_callback(self, scripted_model, orchestrator):
        """Streamed chunks reach the callback as camelCase dicts."""
        scripted_model(
            chunks=[
                [
                    ModelResponseChunk(content=[Part(text="Hel")]),
                    ModelResponseChunk(content=[Part(text="lo")], finish_reason="stop"),
                ]
            ]
        )
        received = []

        result = orchestrator.generate_json(None, _document(), on_chunk=received.append)

        assert received[0] == {"index": 0, "role": "model", "content": [{"text": "Hel"}]}
        assert received[1]["finishReason"] == "stop"
        assert result["candidates"][0]["message"]["content"] == [{"text": "Hello"}]

    def test_failing_chunk_callback_is_contained(self, scripted_model, orchestrator):
        """A raising chunk callback does not abort the call."""
        scripted_model(chunks=[[ModelResponseChunk(content=[Part(text="ok")])]])

        def callback(chunk):
            raise ValueError("client went away")

        result = orchestrator.generate_json(None, _document(), on_chunk=callback)

        assert result["candidates"][0]["message"]["content"] == [{"text": "ok"}]


class TestGenerateJsonTraced:
    """Tests for the traced variant."""

    def test_returns_root_span_ids(self, registry, scripted_model, trace_store):
        """The result carries the ids of the ``generate`` span."""
        scripted_model(responses=[_text_response("hi")])
        orchestrator = GenerateOrchestrator(registry, tracer=trace_store)

        run = orchestrator.generate_json_traced(ActionContext(), _document())

        assert run.result["candidates"][0]["message"]["content"] == [{"text": "hi"}]
        trace = trace_store.get_trace(run.trace_id)
        assert trace is not None
        assert trace.display_name == "generate"
        root = trace.spans[run.span_id]
        assert root.is_root
        assert root.type == "util"
        (model_span,) = trace.spans_by_subtype("model")
        assert model_span.parent_span_id == run.span_id

    def test_untraced_ids_are_none(self, scripted_model, orchestrator):
        """Without tracing the context carries no ids."""
        scripted_model(responses=[_text_response("hi")])

        run = orchestrator.generate_json_traced(None, _document())

        assert run.trace_id is None
        assert run.span_id is None

    def test_fatal_error_marks_span(self, registry, trace_store):
        """A fatal error propagates and the root span records it."""
        orchestrator = GenerateOrchestrator(registry, tracer=trace_store)

        with pytest.raises(ModelResolutionError):
            orchestrator.generate_json_traced(None, _document(model="missing"))

        (trace,) = trace_store.list_traces()
        (root,) = trace.spans.values()
        assert root.status_code != 0
        assert "missing" in root.status_message


class TestSchemas:
    """Tests for the published JSON schemas."""

    def test_input_schema_uses_camel_case(self):
        """The request schema exposes camelCase property names."""
        schema = GenerateOrchestrator.input_schema()
        properties = schema["properties"]
        assert "maxTurns" in properties
        assert "returnToolRequests" in properties
        assert "max_turns" not in properties

    def test_output_schema_requires_candidates(self):
        """The response schema requires at least one candidate."""
        schema = GenerateOrchestrator.output_schema()
        assert "candidates" in schema["required"]
        assert schema["properties"]["candidates"]["minItems"] == 1
