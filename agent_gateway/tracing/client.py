"""
Process-wide Langfuse client for gateway traces.

One client is created at startup by the API lifespan or the CLI. If keys
are absent, the host rejects them, or the SDK raises, the client stays
disabled and records why; observations then do nothing.
"""

import logging
from typing import Any, Optional

from langfuse import Langfuse

from ..config import LangfuseConfig

logger = logging.getLogger(__name__)


class TracingClient:
    """Holds the Langfuse SDK client, or the reason there is none."""

    def __init__(
        self,
        public_key: str = "",
        secret_key: str = "",
        host: str = "",
        debug: bool = False,
        environment: str = "",
        release: str = "",
        sample_rate: Optional[float] = None,
    ):
        self._client: Optional[Langfuse] = None
        self._error: Optional[str] = None

        if not (public_key and secret_key):
            self._error = "Langfuse credentials not configured"
            logger.debug(f"Tracing off: {self._error}")
            return
        if host and "://" not in host:
            logger.warning(f"LANGFUSE_HOST '{host}' has no scheme; expected http(s)://host:port")

        options: dict[str, Any] = {"public_key": public_key, "secret_key": secret_key, "debug": debug}
        for key, value in (("host", host), ("environment", environment), ("release", release)):
            if value:
                options[key] = value
        if sample_rate is not None:
            options["sample_rate"] = sample_rate

        try:
            client = Langfuse(**options)
            authenticated = client.auth_check()
        except Exception as e:
            self._error = f"Langfuse unavailable: {e}"
            logger.warning(f"Tracing off: {self._error}")
            return
        if not authenticated:
            self._error = "Langfuse auth_check failed; verify LANGFUSE_HOST and the key pair"
            logger.warning(f"Tracing off: {self._error}")
            return

        self._client = client
        logger.info(f"Tracing gateway runs to Langfuse at {host or 'cloud.langfuse.com'}")

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def client(self) -> Optional[Langfuse]:
        return self._client

    def flush(self) -> None:
        """Send buffered observations; called at the end of each run."""
        if self._client is None:
            return
        try:
            self._client.flush()
        except Exception as e:
            logger.warning(f"Langfuse flush failed: {e}")

    def shutdown(self) -> None:
        if self._client is None:
            return
        try:
            self._client.shutdown()
        except Exception as e:
            logger.warning(f"Langfuse shutdown failed: {e}")
        else:
            logger.info("Langfuse client closed")


_tracing_client: Optional[TracingClient] = None


def init_tracing_client(
    public_key: str = "",
    secret_key: str = "",
    host: str = "",
    debug: bool = False,
    environment: str = "",
    release: str = "",
    sample_rate: Optional[float] = None,
) -> TracingClient:
    """Replace the process-wide tracing client."""
    global _tracing_client
    _tracing_client = TracingClient(
        public_key=public_key,
        secret_key=secret_key,
        host=host,
        debug=debug,
        environment=environment,
        release=release,
        sample_rate=sample_rate,
    )
    return _tracing_client


def init_tracing_from_config(settings: LangfuseConfig, release: str = "") -> TracingClient:
    """Build the process-wide client from ``LANGFUSE_*`` settings."""
    return init_tracing_client(
        public_key=settings.public_key,
        secret_key=settings.secret_key,
        host=settings.host,
        debug=settings.debug,
        environment=settings.environment,
        release=release,
        sample_rate=settings.sample_rate,
    )


def get_tracing_client() -> Optional[TracingClient]:
    return _tracing_client


def shutdown_tracing() -> None:
    """Close and drop the process-wide client, if one was created."""
    global _tracing_client
    client, _tracing_client = _tracing_client, None
    if client is not None:
        client.shutdown()
