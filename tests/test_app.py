"""
Tests for the GenLoop entry point and tracer selection.
"""

import logging

import pytest
from unittest.mock import patch

from genloop import (
    Candidate,
    GenLoop,
    LimitExceededError,
    Message,
    ModelResponse,
    Part,
    Role,
    create_tracer,
)
from genloop.config import Config, GenerateConfig, LangfuseConfig, TracingConfig
from genloop.tracing import LangfuseTracer, LocalTraceStore, NoopTracer, get_tracing_client


def _config(backend="none", max_turns=5, **langfuse) -> Config:
    return Config(
        generate=GenerateConfig(default_max_turns=max_turns),
        tracing=TracingConfig(backend=backend),
        langfuse=LangfuseConfig(**langfuse),
    )


def _echo_model(request):
    """Replies with the text of the last message."""
    return ModelResponse(
        candidates=[
            Candidate(
                message=Message(
                    role=Role.MODEL,
                    content=[Part(text=f"echo: {request.messages[-1].text}")],
                )
            )
        ]
    )


class TestCreateTracer:
    """Tests for create_tracer."""

    def test_local_backend(self):
        """``local`` keeps traces in memory."""
        config = _config(backend="local")
        config.tracing.local_max_traces = 7
        tracer = create_tracer(config)
        assert isinstance(tracer, LocalTraceStore)
        assert tracer.max_traces == 7

    def test_none_backend(self):
        """``none`` disables tracing."""
        assert isinstance(create_tracer(_config(backend="none")), NoopTracer)

    def test_auto_without_langfuse(self):
        """``auto`` without credentials disables tracing."""
        tracer = create_tracer(_config(backend="auto", public_key="", secret_key=""))
        assert isinstance(tracer, NoopTracer)
        assert get_tracing_client() is None

    def test_langfuse_backend(self):
        """Configured Langfuse credentials produce a LangfuseTracer."""
        with patch("genloop.tracing.client.Langfuse") as langfuse_cls:
            langfuse_cls.return_value.auth_check.return_value = True
            tracer = create_tracer(
                _config(backend="auto", public_key="pk", secret_key="sk")
            )

        assert isinstance(tracer, LangfuseTracer)
        assert get_tracing_client().enabled

    def test_langfuse_backend_without_credentials(self):
        """An explicit langfuse backend still works when tracing is disabled."""
        tracer = create_tracer(_config(backend="langfuse", public_key="", secret_key=""))
        assert isinstance(tracer, LangfuseTracer)
        assert get_tracing_client().enabled is False

    def test_unknown_backend_rejected(self):
        """A misspelled backend fails instead of falling through to Langfuse."""
        with patch("genloop.tracing.client.Langfuse") as langfuse_cls:
            with pytest.raises(ValueError, match="Unknown tracing backend: langfuze"):
                create_tracer(_config(backend="langfuze", public_key="pk", secret_key="sk"))

        langfuse_cls.assert_not_called()
        assert get_tracing_client() is None


class TestGenLoop:
    """Tests for GenLoop."""

    def test_generate_with_prompt_and_system(self):
        """system and prompt wrap the given messages."""
        seen = []

        def model(request):
            seen.append(request)
            return _echo_model(request)

        app = GenLoop(config=_config())
        app.define_model("echo", model)

        response = app.generate(
            "echo",
            prompt="hello",
            system="be brief",
            messages=[Message(role=Role.USER, content=[Part(text="earlier")])],
        )

        assert response.text == "echo: hello"
        assert [m.role for m in seen[0].messages] == [Role.SYSTEM, Role.USER, Role.USER]
        assert seen[0].messages[0].text == "be brief"

    def test_tool_decorator_and_loop(self):
        """Tools defined through the decorator are callable by models."""
        app = GenLoop(config=_config())

        @app.tool(description="Upper-case a word")
        def shout(input: dict) -> dict:
            return {"word": input["word"].upper()}

        def model(request):
            last = request.messages[-1]
            if last.role == Role.TOOL:
                return ModelResponse(
                    candidates=[
                        Candidate(
                            message=Message(
                                role=Role.MODEL,
                                content=[Part(text=last.content[0].tool_response.output["word"])],
                            )
                        )
                    ]
                )
            return ModelResponse(
                candidates=[
                    Candidate(
                        message=Message(
                            role=Role.MODEL,
                            content=[Part.of_tool_request("shout", {"word": "hey"}, ref="1")],
                        )
                    )
                ]
            )

        app.define_model("shouter", model)

        assert app.generate("shouter", prompt="go", tools=["shout"]).text == "HEY"

    def test_configured_default_max_turns(self):
        """The configured turn budget applies to requests without one."""
        app = GenLoop(config=_config(max_turns=1))
        app.define_tool("noop", lambda input: None)
        app.define_model(
            "looper",
            lambda request: ModelResponse(
                candidates=[
                    Candidate(
                        message=Message(
                            role=Role.MODEL, content=[Part.of_tool_request("noop", {})]
                        )
                    )
                ]
            ),
        )

        with pytest.raises(LimitExceededError, match=r"\(1\)"):
            app.generate("looper", prompt="x", tools=["noop"])

    def test_generate_json(self):
        """The JSON entry point delegates to the orchestrator."""
        app = GenLoop(config=_config())
        app.define_model("echo", _echo_model)

        result = app.generate_json(
            {"model": "echo", "messages": [{"role": "user", "content": [{"text": "hi"}]}]}
        )

        assert result["candidates"][0]["message"]["content"] == [{"text": "echo: hi"}]

    def test_local_tracing_records_calls(self):
        """With the local backend generate calls are inspectable."""
        app = GenLoop(config=_config(backend="local"))
        app.define_model("echo", _echo_model)

        app.generate("echo", prompt="hi")

        (trace,) = app.tracer.list_traces()
        assert trace.display_name == "echo"

    def test_close_shuts_down_langfuse(self):
        """close releases the global tracing client."""
        with patch("genloop.tracing.client.Langfuse") as langfuse_cls:
            langfuse_cls.return_value.auth_check.return_value = True
            app = GenLoop(config=_config(backend="langfuse", public_key="pk", secret_key="sk"))

        app.close()

        langfuse_cls.return_value.flush.assert_called()
        langfuse_cls.return_value.shutdown.assert_called_once()
        assert get_tracing_client() is None

    def test_loads_configuration_file_by_default(self, tmp_path, monkeypatch):
        """Without a Config the YAML file named by GENLOOP_CONFIG_PATH is used."""
        path = tmp_path / "genloop.yaml"
        path.write_text(
            "generate:\n  default_max_turns: 2\n"
            "tracing:\n  backend: local\n  local_max_traces: 3\n"
        )
        monkeypatch.setenv("GENLOOP_CONFIG_PATH", str(path))

        app = GenLoop()

        assert app.orchestrator.default_max_turns == 2
        assert isinstance(app.tracer, LocalTraceStore)
        assert app.tracer.max_traces == 3

    def test_setup_logging_applies_level(self):
        """setup_logging configures the genloop logger from config."""
        config = _config()
        config.logging.level = "DEBUG"

        genloop_logger = logging.getLogger("genloop")
        previous = genloop_logger.level
        try:
            GenLoop(config=config, setup_logging=True)
            assert genloop_logger.level == logging.DEBUG
        finally:
            genloop_logger.setLevel(previous)
