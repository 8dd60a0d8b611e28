"""
Process-wide Langfuse connection for the tracing layer.

``TracingClient`` owns the Langfuse SDK v3 client. It starts disabled and
only switches on once credentials are present and ``auth_check`` passes;
a disabled client turns ``flush``/``shutdown`` into no-ops and makes
``LangfuseTracer`` run bodies untraced.
"""

import logging
from typing import Any, Optional

from langfuse import Langfuse

from ..config import LangfuseConfig

logger = logging.getLogger(__name__)


class TracingClient:
    """Langfuse client holder that degrades to disabled instead of failing."""

    def __init__(
        self,
        public_key: str = "",
        secret_key: str = "",
        host: str = "",
        debug: bool = False,
        flush_at: Optional[int] = None,
        flush_interval: Optional[float] = None,
    ):
        self._client: Optional[Langfuse] = None
        self._error: Optional[str] = None

        if not (public_key and secret_key):
            self._disable("Langfuse credentials not configured", level=logging.DEBUG)
            return
        if host and "://" not in host:
            logger.warning("Langfuse host '%s' has no scheme; expected http(s)://host:port", host)

        options: dict[str, Any] = {
            "public_key": public_key,
            "secret_key": secret_key,
            "debug": debug,
            "host": host or None,
            "flush_at": flush_at,
            "flush_interval": flush_interval,
        }
        self._connect({k: v for k, v in options.items() if v is not None})

    @classmethod
    def from_config(cls, config: LangfuseConfig) -> "TracingClient":
        return cls(
            public_key=config.public_key,
            secret_key=config.secret_key,
            host=config.host,
            debug=config.debug,
            flush_at=config.flush_at,
            flush_interval=config.flush_interval,
        )

    def _connect(self, options: dict[str, Any]) -> None:
        try:
            client = Langfuse(**options)
        except Exception as e:
            self._disable(f"Failed to initialize Langfuse client: {e}")
            return

        try:
            authenticated = client.auth_check()
        except Exception as e:
            self._disable(f"Langfuse connectivity check failed: {e}")
            return
        if not authenticated:
            self._disable(
                "Langfuse auth_check() failed - endpoint unreachable or credentials invalid"
            )
            return

        self._client = client
        logger.info("Langfuse tracing enabled (host: %s)", options.get("host", "default"))

    def _disable(self, reason: str, level: int = logging.WARNING) -> None:
        self._client = None
        self._error = reason
        logger.log(level, "Tracing disabled: %s", reason)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def error(self) -> Optional[str]:
        """Why tracing is disabled, if it is."""
        return self._error

    @property
    def client(self) -> Optional[Langfuse]:
        return self._client

    def flush(self) -> None:
        """Send buffered observations now."""
        if self._client is None:
            return
        try:
            self._client.flush()
        except Exception as e:
            logger.warning("Failed to flush tracing events: %s", e)

    def shutdown(self) -> None:
        """Flush and stop the SDK's background exporter."""
        if self._client is None:
            return
        try:
            self._client.shutdown()
        except Exception as e:
            logger.warning("Error during tracing client shutdown: %s", e)
        else:
            logger.info("Langfuse tracing client shut down")


_tracing_client: Optional[TracingClient] = None


def init_tracing_client(config: Optional[LangfuseConfig] = None) -> TracingClient:
    """
    Create the process-wide tracing client, replacing any previous one.

    Args:
        config: Langfuse settings. Without one the client starts disabled.
    """
    global _tracing_client
    if _tracing_client is not None:
        _tracing_client.shutdown()
    _tracing_client = TracingClient.from_config(config) if config else TracingClient()
    return _tracing_client


def get_tracing_client() -> Optional[TracingClient]:
    return _tracing_client


def shutdown_tracing() -> None:
    """Shut down and forget the process-wide tracing client."""
    global _tracing_client
    client, _tracing_client = _tracing_client, None
    if client is not None:
        client.shutdown()
