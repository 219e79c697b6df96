"""Transport layer: the raw duplex connection and its credentials."""

from research_stream.transport.base import (
    ABNORMAL_CLOSURE,
    NORMAL_CLOSURE,
    Transport,
    TransportClosed,
    TransportError,
    redact_url,
    with_token,
)
from research_stream.transport.credentials import (
    ChainedCredentialSource,
    CredentialSource,
    EnvCredentialSource,
    StaticCredentialSource,
    StoredSessionCredentialSource,
    default_credential_source,
)
from research_stream.transport.websocket import WebSocketTransport

__all__ = [
    "ABNORMAL_CLOSURE",
    "NORMAL_CLOSURE",
    "Transport",
    "TransportClosed",
    "TransportError",
    "WebSocketTransport",
    "redact_url",
    "with_token",
    # Credentials
    "ChainedCredentialSource",
    "CredentialSource",
    "EnvCredentialSource",
    "StaticCredentialSource",
    "StoredSessionCredentialSource",
    "default_credential_source",
]
