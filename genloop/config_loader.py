"""
Configuration loader for genloop.

Loads configuration from a YAML file with support for environment
variable interpolation. Values missing from the file keep their
environment-derived defaults from ``genloop.config``.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from .config import (
    TRACING_BACKENDS,
    Config,
    GenerateConfig,
    LangfuseConfig,
    LoggingConfig,
    TracingConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "genloop.yaml"

# Regex for environment variable interpolation: ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

_config: Optional[Config] = None


def resolve_env_vars(value: str) -> str:
    """
    Resolve environment variable references in a string.

    Supports ${VAR} and ${VAR:-default} syntax. Unset variables without a
    default resolve to the empty string.
    """

    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _substitute_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: _substitute_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars_recursive(item) for item in data]
    elif isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def _parse_generate_config(data: dict) -> GenerateConfig:
    defaults = GenerateConfig()
    max_turns = int(data.get("default_max_turns", defaults.default_max_turns))
    if max_turns < 0:
        raise ValueError("default_max_turns must not be negative")
    return GenerateConfig(default_max_turns=max_turns)


def _parse_tracing_config(data: dict) -> TracingConfig:
    defaults = TracingConfig()
    backend = str(data.get("backend", defaults.backend)).lower()
    if backend not in TRACING_BACKENDS:
        raise ValueError(
            f"Unknown tracing backend: {backend} (expected one of {', '.join(TRACING_BACKENDS)})"
        )
    return TracingConfig(
        backend=backend,
        local_max_traces=int(data.get("local_max_traces", defaults.local_max_traces)),
    )


def _parse_langfuse_config(data: dict) -> LangfuseConfig:
    defaults = LangfuseConfig()
    return LangfuseConfig(
        public_key=data.get("public_key", defaults.public_key),
        secret_key=data.get("secret_key", defaults.secret_key),
        host=data.get("host", defaults.host),
        debug=_as_bool(data.get("debug", defaults.debug)),
        flush_at=int(data.get("flush_at", defaults.flush_at)),
        flush_interval=float(data.get("flush_interval", defaults.flush_interval)),
    )


def _parse_logging_config(data: dict) -> LoggingConfig:
    defaults = LoggingConfig()
    return LoggingConfig(
        level=str(data.get("level", defaults.level)).upper(),
        format=data.get("format", defaults.format),
    )


_SECTIONS = {
    "generate": _parse_generate_config,
    "tracing": _parse_tracing_config,
    "langfuse": _parse_langfuse_config,
    "logging": _parse_logging_config,
}


def parse_config(raw_config: dict) -> Config:
    """
    Build a Config from an already loaded mapping.

    Raises:
        ValueError: If a section is malformed.
    """
    raw_config = _substitute_env_vars_recursive(raw_config)
    sections: dict[str, Any] = {}
    for name, parser in _SECTIONS.items():
        data = raw_config.get(name) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Invalid '{name}' configuration: expected a mapping")
        try:
            sections[name] = parser(data)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid '{name}' configuration: {e}") from e

    return Config(version=str(raw_config.get("version", "1.0")), **sections)


def load_config(path: Optional[str] = None, reload: bool = False) -> Config:
    """
    Load configuration, caching the result.

    Args:
        path: Path to a YAML file. If None, uses GENLOOP_CONFIG_PATH or
            config/genloop.yaml; when neither exists, environment defaults
            are used.
        reload: If True, ignore the cached config.

    Returns:
        The loaded Config.

    Raises:
        FileNotFoundError: If an explicitly given file does not exist.
        ValueError: If the file is invalid.
    """
    global _config

    if _config is not None and not reload:
        return _config

    explicit = path is not None or "GENLOOP_CONFIG_PATH" in os.environ
    config_path = Path(path or os.environ.get("GENLOOP_CONFIG_PATH", DEFAULT_CONFIG_PATH))

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(f"Configuration file not found at {config_path}")
        logger.debug("No configuration file at %s, using environment defaults", config_path)
        _config = Config()
        return _config

    logger.info(f"Loading configuration from {config_path}")
    with open(config_path, "r") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")

    _config = parse_config(raw_config)
    logger.debug(
        "Configuration loaded: version=%s, tracing=%s, max_turns=%d",
        _config.version,
        _config.tracing.backend,
        _config.generate.default_max_turns,
    )
    return _config


def reset_config_cache() -> None:
    """Reset the configuration cache, forcing a reload on next access."""
    global _config
    _config = None
