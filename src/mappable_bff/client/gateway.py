"""HTTP client for the BFF's ``/api`` surface.

The underlying ``httpx.AsyncClient`` keeps the session cookie in its jar, so
one ``GatewayClient`` corresponds to one browser session.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import GatewayRequestError

_logger = logging.getLogger(__name__)

MAP_SCRIPT_PATH = "/api/map-script"


class GatewayClient:
    def __init__(self, base_url: str = "http://localhost:5000", *,
                 http_client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @property
    def script_url(self) -> str:
        return str(self._http.base_url.join(MAP_SCRIPT_PATH))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            _logger.debug("Gateway %s %s failed: %s", method, path, type(exc).__name__)
            raise GatewayRequestError(f"Could not reach gateway: {type(exc).__name__}", endpoint=path) from exc
        if not response.is_success:
            raise GatewayRequestError(
                f"Gateway returned HTTP {response.status_code}",
                status_code=response.status_code,
                endpoint=path,
            )
        return response

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayRequestError("Gateway returned invalid JSON", endpoint=path) from exc

    async def check_key(self) -> bool:
        data = await self._json("GET", "/api/checkApiKey")
        return isinstance(data, dict) and bool(data.get("apiKeyExists"))

    async def set_key(self, api_key: str) -> None:
        await self._request("POST", "/api/setApiKey", json={"apiKey": api_key})

    async def clear_key(self) -> None:
        await self._request("POST", "/api/clearApiKey")

    async def fetch_script(self) -> bytes:
        response = await self._request("GET", MAP_SCRIPT_PATH)
        return response.content

    async def suggest(self, query: str) -> Any:
        return await self._json("POST", "/api/suggest", json={"query": query})

    async def geocode(self, uri: str) -> Any:
        return await self._json("POST", "/api/geocode", json={"uri": uri})
