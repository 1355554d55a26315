"""HTTP client for the relay's administrative surface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from ..config.settings import AppSettings


@dataclass(slots=True)
class ApiStatus:
    """Result of ``GET /api-status``."""

    configured: bool
    message: str
    server: str


class RelayAPIError(RuntimeError):
    """The relay answered with an error body or could not be reached."""


class RelayAPI:
    """Async client for ``/health``, ``/api-status`` and ``/set-api-key``."""

    def __init__(self, settings: AppSettings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.server.base_url,
            verify=settings.server.verify_ssl,
            timeout=settings.server.request_timeout,
            transport=transport,
        )

    async def health(self) -> dict[str, Any]:
        response = await self._get("/health")
        return response.json()

    async def api_status(self) -> ApiStatus:
        data = (await self._get("/api-status")).json()
        return ApiStatus(
            configured=bool(data.get("configured")),
            message=str(data.get("message", "")),
            server=str(data.get("server", "")),
        )

    async def set_api_key(self, api_key: str) -> str:
        """Send the Gemini key; return the relay message or raise RelayAPIError."""
        key = api_key.strip()
        if not key:
            raise RelayAPIError("Please enter your Gemini API key")
        try:
            response = await self._client.post("/set-api-key", json={"apiKey": key})
        except httpx.HTTPError as exc:
            raise RelayAPIError("Could not connect to server. Make sure the backend is running.") from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise RelayAPIError(f"Non-JSON response from relay: {response.text[:200]}") from exc
        if response.status_code != 200:
            raise RelayAPIError(str(data.get("error") or "Failed to configure API key"))
        return str(data.get("message", "API key set successfully"))

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str) -> httpx.Response:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as exc:
            raise RelayAPIError("Could not connect to server. Make sure the backend is running.") from exc
        response.raise_for_status()
        return response
