"""Session lookup against the backend's REST API.

A stream connection needs a session id. When the caller does not have one,
the first active session reported by the backend is used.
"""

import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field, ValidationError

from research_stream.config import get_config
from research_stream.errors import SessionLookupError
from research_stream.transport.credentials import CredentialSource, default_credential_source

logger = logging.getLogger(__name__)

SESSIONS_PATH = "/api/sessions"


class SessionListing(BaseModel):
    """Response of the session listing endpoint."""

    sessions: dict[str, Any] = Field(default_factory=dict)
    total_sessions: int = 0
    timestamp: str | None = None

    @property
    def session_ids(self) -> list[str]:
        return list(self.sessions.keys())


class SessionDirectory:
    """Lists and resolves research sessions over HTTP."""

    def __init__(
        self,
        api_base_url: str | None = None,
        credentials: CredentialSource | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the directory.

        Args:
            api_base_url: REST API base URL. Defaults to the configured one.
            credentials: Source of the bearer token sent with requests.
            http_client: Client to use instead of creating one (it is not closed here).
            timeout: Request timeout for an owned client, in seconds.
        """
        self._credentials = credentials or default_credential_source()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=api_base_url or get_config().api_base_url,
            timeout=timeout,
        )

    async def __aenter__(self) -> "SessionDirectory":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        token = self._credentials.get_token()
        if not token:
            logger.debug(f"No auth token available for GET {SESSIONS_PATH}")
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def list_sessions(self) -> SessionListing:
        """Fetch the backend's active sessions.

        Raises:
            SessionLookupError: If the request fails or the response is malformed
        """
        try:
            response = await self._client.get(SESSIONS_PATH, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise SessionLookupError(
                f"Failed to get sessions: HTTP {status}", retriable=status >= 500
            ) from e
        except httpx.HTTPError as e:
            raise SessionLookupError(f"Failed to get sessions: {e}", retriable=True) from e

        try:
            listing = SessionListing.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise SessionLookupError(f"Invalid session listing: {e}") from e

        logger.info(f"Retrieved {listing.total_sessions} active session(s)")
        return listing

    async def resolve_session_id(self) -> str:
        """Return the first active session's id.

        Raises:
            SessionLookupError: If the backend reports no sessions
        """
        listing = await self.list_sessions()
        if not listing.session_ids:
            raise SessionLookupError("No session ID available")
        session_id = listing.session_ids[0]
        logger.info(f"Using existing session: {session_id}")
        return session_id
