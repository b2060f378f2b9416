"""HTTP client for the authoritative session status endpoint."""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from trivia.exceptions import StatusFetchError

if TYPE_CHECKING:
    from trivia.settings import SyncSettings

logger = structlog.get_logger()

API_KEY_HEADER = "X-API-Key"


class StatusApiClient:
    """Read session status and health from the game API.

    A shared ``httpx.AsyncClient`` may be injected; otherwise one is created
    lazily and closed by aclose().
    """

    def __init__(
        self,
        api_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: SyncSettings, client: httpx.AsyncClient | None = None) -> StatusApiClient:
        return cls(
            settings.api_url,
            api_key=settings.api_key,
            timeout=settings.fetch_timeout_seconds,
            client=client,
        )

    @property
    def api_url(self) -> str:
        return self._api_url

    def status_url(self, session_code: str) -> str:
        return f"{self._api_url}/game-logic/status/{session_code}"

    def _headers(self) -> dict[str, str]:
        return {API_KEY_HEADER: self._api_key} if self._api_key else {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def fetch_status(self, session_code: str) -> dict[str, Any]:
        """
        Fetch the authoritative snapshot for one session.

        Raises:
            StatusFetchError: on transport errors, non-2xx responses, or a body
                that is not a JSON object

        """
        try:
            response = await self._get_client().get(self.status_url(session_code), headers=self._headers())
        except httpx.RequestError as e:
            raise StatusFetchError(session_code=session_code, reason=f"request failed: {e}") from e

        if not response.is_success:
            raise StatusFetchError(
                session_code=session_code,
                reason=f"HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            body = response.json()
        except ValueError as e:
            raise StatusFetchError(
                session_code=session_code,
                reason="response is not valid JSON",
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict):
            raise StatusFetchError(
                session_code=session_code,
                reason=f"expected object, got {type(body).__name__}",
                status_code=response.status_code,
            )
        return body

    async def check_health(self) -> bool:
        """Return True when GET /health answers 200."""
        try:
            response = await self._get_client().get(f"{self._api_url}/health")
        except httpx.RequestError as e:
            logger.warning("health check failed", api_url=self._api_url, error=str(e))
            return False
        return response.status_code == HTTPStatus.OK

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
