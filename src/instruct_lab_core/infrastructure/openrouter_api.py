"""
OpenRouter REST API

Async helpers for the OpenRouter endpoints the OpenAI SDK does not cover:
key verification (GET /auth/key) and the model list (GET /models).
"""

import logging
from typing import Any

import httpx

from instruct_lab_core.domain.constants import OPENROUTER_BASE_URL
from instruct_lab_core.domain.errors import CredentialError, LabError, NetworkError

logger = logging.getLogger(__name__)


class OpenRouterAPI:
    """Thin async client for /auth/key and /models"""

    def __init__(
        self,
        base_url: str = OPENROUTER_BASE_URL,
        *,
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Args:
            base_url: API root, e.g. https://openrouter.ai/api/v1
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self, api_key: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    async def _get(self, api_key: str, path: str) -> httpx.Response:
        try:
            async with self._client(api_key) as client:
                response = await client.get(path)
        except httpx.TimeoutException as e:
            raise NetworkError("Request timed out. Please try again.", context={"path": path}) from e
        except httpx.TransportError as e:
            raise NetworkError(
                "Network connection failed. Please check your internet connection.",
                context={"path": path},
            ) from e

        if response.status_code in (401, 403):
            raise CredentialError(
                "Invalid API key. Please check your OpenRouter API key.",
                context={"path": path, "status_code": response.status_code},
            )
        if response.status_code == 429 or response.status_code >= 500:
            raise NetworkError(
                f"OpenRouter returned {response.status_code}",
                status_code=response.status_code,
                context={"path": path},
            )
        if response.status_code >= 400:
            raise LabError(
                f"API error ({response.status_code})",
                context={"path": path, "status_code": response.status_code},
            )
        return response

    async def verify_key(self, api_key: str) -> bool:
        """
        Check the key against GET /auth/key

        Returns:
            True when the provider accepts the key

        Raises:
            CredentialError: The provider rejected the key
            NetworkError: Transport failure or provider-side error
        """
        await self._get(api_key, "/auth/key")
        logger.debug("API key accepted by %s", self.base_url)
        return True

    async def list_models(self, api_key: str) -> list[dict[str, Any]]:
        """Fetch raw model entries from GET /models"""
        response = await self._get(api_key, "/models")
        try:
            payload = response.json()
        except ValueError as e:
            raise LabError("Model list response is not valid JSON") from e
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise LabError("Model list response missing 'data' field")
        return data
