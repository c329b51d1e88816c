import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from rbac_console.config.settings import settings
from rbac_console.core.errors import TransportError, api_error_from_response

logger = logging.getLogger(__name__)


def quote_segment(value: str) -> str:
    """Percent-encode a single path segment (slashes included)"""
    return quote(str(value), safe="")


class HttpClient:
    _client: Optional[httpx.AsyncClient] = None

    @classmethod
    def get_client(cls) -> httpx.AsyncClient:
        if cls._client is None:
            cls._client = httpx.AsyncClient(
                base_url=settings.api_base_url.rstrip("/"),
                timeout=httpx.Timeout(settings.api_timeout_seconds),
                headers={"Accept": "application/json"},
            )
        return cls._client

    @classmethod
    async def aclose(cls):
        if cls._client is not None:
            await cls._client.aclose()
        cls._client = None


class PolicyApiClient:
    """Thin wrapper over the shared httpx client that forwards the console user's bearer token."""

    def __init__(self, token: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self.token = token or settings.api_token
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or HttpClient.get_client()

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self.client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.TransportError as e:
            logger.error(f"Policy API unreachable ({method} {path}): {e}")
            raise TransportError(f"Policy API unreachable: {e}") from e

        if response.is_error:
            error = api_error_from_response(response)
            logger.warning(f"Policy API {method} {path} failed with {response.status_code}: {error.message}")
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Any:
        return await self.request("POST", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)


def get_policy_api(token: Optional[str] = None) -> PolicyApiClient:
    return PolicyApiClient(token)
