"""Configuration for the research stream client.

Values are read from environment variables so the same client can point at a
local backend during development and at the hosted API in production.
"""

import logging
import os

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "http://localhost:8000"
STREAM_PATH = "/api/chat/stream/{session_id}"


class BackoffPolicy(BaseModel):
    """Exponential backoff applied between reconnect attempts."""

    initial_delay: float = 1.0
    """Delay before the first reconnect attempt, in seconds."""

    multiplier: float = 2.0
    """Factor applied to the delay after every attempt."""

    max_delay: float = 30.0
    """Upper bound for any single delay."""

    max_attempts: int = 3
    """Reconnect attempts allowed before giving up."""

    def delay_for(self, attempt: int) -> float:
        """Return the delay preceding reconnect attempt number ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        delay = self.initial_delay * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_delay)

    def schedule(self) -> list[float]:
        """All delays the policy will ever wait, in order."""
        return [self.delay_for(n) for n in range(1, self.max_attempts + 1)]


class StreamClientConfig(BaseModel):
    """Settings for connecting to the research agent stream."""

    api_base_url: str = DEFAULT_API_BASE_URL
    ws_base_url: str | None = None
    connect_timeout: float = 10.0
    idle_timeout: float | None = 60.0
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)

    @property
    def stream_base_url(self) -> str:
        """Base URL for WebSocket connections.

        Falls back to the API base URL with its scheme swapped to ws/wss.
        """
        if self.ws_base_url:
            return self.ws_base_url.rstrip("/")
        base = self.api_base_url.rstrip("/")
        if base.startswith("https://"):
            return "wss://" + base[len("https://"):]
        if base.startswith("http://"):
            return "ws://" + base[len("http://"):]
        return base

    def stream_url(self, session_id: str) -> str:
        """Endpoint for a session's stream, without credentials."""
        if not session_id:
            raise ValueError("Session ID is required for a stream connection")
        return self.stream_base_url + STREAM_PATH.format(session_id=session_id)

    @classmethod
    def from_env(cls) -> "StreamClientConfig":
        """Build a config from ``RESEARCH_*`` environment variables."""
        idle_timeout: float | None = _env_float("RESEARCH_IDLE_TIMEOUT", 60.0)
        if idle_timeout is not None and idle_timeout <= 0:
            idle_timeout = None

        return cls(
            api_base_url=os.getenv("RESEARCH_API_BASE_URL", DEFAULT_API_BASE_URL),
            ws_base_url=os.getenv("RESEARCH_WS_BASE_URL") or None,
            connect_timeout=_env_float("RESEARCH_CONNECT_TIMEOUT", 10.0),
            idle_timeout=idle_timeout,
            backoff=BackoffPolicy(
                initial_delay=_env_float("RESEARCH_RECONNECT_INITIAL_DELAY", 1.0),
                max_attempts=int(_env_float("RESEARCH_RECONNECT_MAX_ATTEMPTS", 3)),
            ),
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


# Global config instance (lazy initialization)
_config: StreamClientConfig | None = None


def get_config() -> StreamClientConfig:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = StreamClientConfig.from_env()
    return _config


def reset_config() -> None:
    """Forget the cached config so the next ``get_config`` re-reads the environment."""
    global _config
    _config = None
