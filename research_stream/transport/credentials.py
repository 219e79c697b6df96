"""Credential sources for authenticating stream connections.

Token acquisition itself (login, refresh) happens elsewhere. A source only
hands back whatever bearer token is currently available, synchronously, so a
connection attempt never waits on it.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Locations of the access token inside a stored auth session document
TOKEN_PATHS: list[tuple[str, ...]] = [
    ("access_token",),
    ("currentSession", "access_token"),
    ("session", "access_token"),
    ("data", "session", "access_token"),
]


class CredentialSource(ABC):
    """Supplies the bearer token for the active user."""

    @abstractmethod
    def get_token(self) -> str | None:
        """Return the current token, or None if none is available."""
        pass


class StaticCredentialSource(CredentialSource):
    """Holds a token set by the caller; ``update`` swaps it after a refresh."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token

    def update(self, token: str | None) -> None:
        self._token = token

    def get_token(self) -> str | None:
        return self._token


class EnvCredentialSource(CredentialSource):
    """Reads the token from an environment variable on every call."""

    def __init__(self, variable: str = "RESEARCH_AUTH_TOKEN") -> None:
        self.variable = variable

    def get_token(self) -> str | None:
        return os.environ.get(self.variable) or None


class StoredSessionCredentialSource(CredentialSource):
    """Reads the token from a JSON auth session written by the login flow."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def get_token(self) -> str | None:
        if not self.path.exists():
            return None
        try:
            document = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read stored auth session {self.path}: {e}")
            return None
        token = extract_access_token(document)
        if token:
            logger.debug(f"Authentication token retrieved from {self.path}")
        return token


class ChainedCredentialSource(CredentialSource):
    """Asks each source in turn and returns the first token found."""

    def __init__(self, *sources: CredentialSource) -> None:
        self.sources = list(sources)

    def get_token(self) -> str | None:
        for source in self.sources:
            token = source.get_token()
            if token:
                return token
        return None


def extract_access_token(document: Any) -> str | None:
    """Find an access token in a stored auth session document."""
    for path in TOKEN_PATHS:
        value = document
        for key in path:
            if not isinstance(value, dict):
                value = None
                break
            value = value.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def default_credential_source() -> CredentialSource:
    """Environment token first, then the stored auth session if one is configured."""
    sources: list[CredentialSource] = [EnvCredentialSource()]
    session_file = os.getenv("RESEARCH_AUTH_SESSION_FILE")
    if session_file:
        sources.append(StoredSessionCredentialSource(session_file))
    return ChainedCredentialSource(*sources)
