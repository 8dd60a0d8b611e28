"""
Configuration for genloop.

Defaults come from environment variables (a ``.env`` file is loaded
first), so a bare ``Config()`` is usable for local development. See
``genloop.config_loader`` for loading a YAML file on top of these.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

TRACING_BACKENDS = ("auto", "langfuse", "local", "none")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class GenerateConfig:
    """Defaults for generate calls."""

    default_max_turns: int = field(
        default_factory=lambda: int(os.getenv("GENLOOP_MAX_TURNS", "5"))
    )


@dataclass
class LangfuseConfig:
    """Configuration for Langfuse observability.

    Tracing auto-enables when both public_key and secret_key are provided.
    """

    public_key: str = field(default_factory=lambda: os.getenv("LANGFUSE_PUBLIC_KEY", ""))
    secret_key: str = field(default_factory=lambda: os.getenv("LANGFUSE_SECRET_KEY", ""))
    host: str = field(default_factory=lambda: os.getenv("LANGFUSE_HOST", ""))
    debug: bool = field(default_factory=lambda: _env_bool("LANGFUSE_DEBUG"))
    flush_at: int = field(default_factory=lambda: int(os.getenv("LANGFUSE_FLUSH_AT", "10")))
    flush_interval: float = field(
        default_factory=lambda: float(os.getenv("LANGFUSE_FLUSH_INTERVAL", "1.0"))
    )

    @property
    def enabled(self) -> bool:
        return bool(self.public_key and self.secret_key)


@dataclass
class TracingConfig:
    """Which tracer backs generate calls.

    ``auto`` uses Langfuse when it is configured and no tracing otherwise.
    """

    backend: str = field(default_factory=lambda: os.getenv("GENLOOP_TRACING", "auto"))
    local_max_traces: int = 100


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class Config:
    """Main configuration container."""

    version: str = "1.0"
    generate: GenerateConfig = field(default_factory=GenerateConfig)
    tracing: TracingConfig = field(default_factory=TracingConfig)
    langfuse: LangfuseConfig = field(default_factory=LangfuseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def log_level(self) -> str:
        return self.logging.level
