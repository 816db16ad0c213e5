"""Outbound calls to the four Mappable hosts.

Every request carries the session's API key as the ``apikey`` query
parameter. Failures of any kind surface as :class:`UpstreamError` with a
fixed, endpoint-specific message; the original exception is logged by type
and redacted URL only, since httpx embeds the full URL (key included) in its
exception text.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any
from urllib.parse import quote

import httpx

from ._redact import redact_text
from .config import Settings
from .exceptions import ResourcePathError, UpstreamError

logger = logging.getLogger(__name__)

APIKEY_PARAM = "apikey"

SCRIPT_ERROR = "Error fetching map script"
RESOURCE_ERROR = "Error fetching map resource"
SUGGEST_ERROR = "Error fetching suggestions"
GEOCODE_ERROR = "Error fetching geocode data"

_ENCODED_SEPARATOR = re.compile(r"%(2e|2f|5c)", re.IGNORECASE)
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_PATH_SAFE = "/-._~!$&'()*+,;=@"


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.UPSTREAM_TIMEOUT_SECONDS),
        follow_redirects=False,
    )


def normalize_resource_path(raw_path: str) -> str:
    """Validate a tile sub-path and return it percent-encoded.

    The path must stay below the tile host root: no ``.``/``..`` or empty
    segments, no backslashes, no encoded separators or dots, no control
    characters and nothing that looks like a scheme or authority.
    """
    if not raw_path or raw_path.startswith("/"):
        raise ResourcePathError("Invalid resource path.")
    if "\\" in raw_path or _CONTROL_CHARS.search(raw_path) or _ENCODED_SEPARATOR.search(raw_path):
        raise ResourcePathError("Invalid resource path.")

    segments = raw_path.split("/")
    if ":" in segments[0]:
        raise ResourcePathError("Invalid resource path.")
    for segment in segments:
        if segment in ("", ".", ".."):
            raise ResourcePathError("Invalid resource path.")

    return quote(raw_path, safe=_PATH_SAFE)


def merge_query(client_params: Iterable[tuple[str, str]], api_key: str) -> list[tuple[str, str]]:
    """Client query parameters plus the injected key; a client ``apikey`` is dropped."""
    merged = [(k, v) for k, v in client_params if k.lower() != APIKEY_PARAM]
    merged.append((APIKEY_PARAM, api_key))
    return merged


class MappableUpstream:
    """Thin wrapper around a shared ``httpx.AsyncClient``."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings
        self.tile_base = httpx.URL(str(settings.TILE_HOST_URL).rstrip("/") + "/")

    async def _send(self, request: httpx.Request, *, endpoint: str, error_message: str,
                    stream: bool = False) -> httpx.Response:
        try:
            response = await self.client.send(request, stream=stream)
        except httpx.RequestError as exc:
            logger.error("Request error calling %s (%s): %s", endpoint, type(exc).__name__,
                         redact_text(str(request.url)))
            raise UpstreamError(error_message, endpoint=endpoint) from exc

        if response.is_success:
            return response

        if stream:
            await response.aclose()
        logger.error("HTTP %s from %s: %s", response.status_code, endpoint,
                     redact_text(str(request.url)))
        raise UpstreamError(error_message, endpoint=endpoint)

    async def _get_json(self, url: str, params: dict[str, Any], *, endpoint: str,
                        error_message: str) -> Any:
        request = self.client.build_request("GET", url, params=params)
        response = await self._send(request, endpoint=endpoint, error_message=error_message)
        try:
            return response.json()
        except ValueError as exc:
            logger.error("Undecodable JSON from %s (%d bytes)", endpoint, len(response.content))
            raise UpstreamError(error_message, endpoint=endpoint) from exc

    async def fetch_script(self, api_key: str) -> bytes:
        params = {"lang": self.settings.MAP_LANG, APIKEY_PARAM: api_key}
        request = self.client.build_request(
            "GET", str(self.settings.SCRIPT_HOST_URL), params=params,
        )
        response = await self._send(request, endpoint="script", error_message=SCRIPT_ERROR)
        logger.info("Fetched map script (%d bytes)", len(response.content))
        return response.content

    async def open_resource(self, api_key: str, raw_path: str,
                            client_params: Iterable[tuple[str, str]]) -> httpx.Response:
        """Start a streamed GET against the tile host.

        The caller owns the returned response and must ``aclose()`` it.
        """
        safe_path = normalize_resource_path(raw_path)
        url = self.tile_base.join(safe_path)
        if url.host != self.tile_base.host or not url.path.startswith(self.tile_base.path):
            raise ResourcePathError("Invalid resource path.")

        request = self.client.build_request(
            "GET", url, params=merge_query(client_params, api_key),
        )
        logger.debug("Proxying map resource %s", safe_path)
        return await self._send(request, endpoint="tiles", error_message=RESOURCE_ERROR, stream=True)

    async def suggest(self, api_key: str, text: str) -> Any:
        params = {
            "lang": self.settings.MAP_LANG,
            APIKEY_PARAM: api_key,
            "text": text,
            "print_address": 1,
            "attrs": "uri",
        }
        return await self._get_json(str(self.settings.SUGGEST_URL), params,
                                    endpoint="suggest", error_message=SUGGEST_ERROR)

    async def geocode(self, api_key: str, uri: str) -> Any:
        params = {
            "lang": self.settings.MAP_LANG,
            "format": "json",
            APIKEY_PARAM: api_key,
            "uri": uri,
        }
        return await self._get_json(str(self.settings.GEOCODE_URL), params,
                                    endpoint="geocode", error_message=GEOCODE_ERROR)
