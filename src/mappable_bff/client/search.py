"""Debounced search, suggestion selection and geocode recentering."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .errors import ClientError, ClientParseError
from .gateway import GatewayClient
from .models import DEFAULT_LOCATION, Location, Suggestion

_logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.1
SELECTED_ZOOM = 15
GEOCODE_FAILED_MESSAGE = "Failed to retrieve location details. Please try again."


class Debouncer:
    """Trailing-edge debounce on the running event loop.

    Each :meth:`call` cancels whatever the previous call scheduled, including
    a callback that is already awaiting the network, so only the last call
    inside the quiescence window runs to completion.
    """

    def __init__(self, delay: float, callback: Callable[..., Awaitable[None]]) -> None:
        self.delay = delay
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def call(self, *args: Any) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(*args))

    async def _run(self, *args: Any) -> None:
        await asyncio.sleep(self.delay)
        await self._callback(*args)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Wait until no call is scheduled or running."""
        while self.pending:
            await asyncio.wait({self._task})


def parse_suggestions(payload: Any) -> list[Suggestion]:
    """``payload["results"]`` as suggestions; anything malformed yields ``[]``."""
    if not isinstance(payload, dict):
        return []
    results = payload.get("results")
    if not isinstance(results, list):
        return []
    suggestions = []
    for item in results:
        if not isinstance(item, dict):
            continue
        try:
            suggestions.append(Suggestion.model_validate(item))
        except PydanticValidationError:
            _logger.debug("Skipping malformed suggestion entry")
    return suggestions


def parse_geocode_position(payload: Any, zoom: float = SELECTED_ZOOM) -> Location:
    """Location of the first feature member of a geocoder response.

    ``Point.pos`` is a space separated ``"lon lat"`` string; the order is
    preserved in ``Location.center``.
    """
    try:
        members = payload["response"]["GeoObjectCollection"]["featureMember"]
        pos = members[0]["GeoObject"]["Point"]["pos"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ClientParseError("Geocode response has no point") from exc
    if not isinstance(pos, str):
        raise ClientParseError("Geocode point is not a string")

    parts = pos.split()
    if len(parts) != 2:
        raise ClientParseError(f"Expected 'lon lat', got {len(parts)} value(s)")
    try:
        lon, lat = float(parts[0]), float(parts[1])
    except ValueError as exc:
        raise ClientParseError("Geocode point is not numeric") from exc
    return Location(center=(lon, lat), zoom=zoom)


class SearchFlow:
    """Search box state: query, suggestions, current location and error."""

    def __init__(self, gateway: GatewayClient, *, delay: float = DEBOUNCE_SECONDS,
                 initial_location: Location = DEFAULT_LOCATION) -> None:
        self.gateway = gateway
        self.query = ""
        self.suggestions: list[Suggestion] = []
        self.location = initial_location
        self.error: str | None = None
        self._generation = 0
        self._debouncer = Debouncer(delay, self.search)

    def on_input(self, text: str) -> None:
        self.query = text
        self._debouncer.call(text)

    async def wait_idle(self) -> None:
        await self._debouncer.wait()

    def close(self) -> None:
        self._debouncer.cancel()

    async def search(self, query: str) -> None:
        self._generation += 1
        generation = self._generation

        if not query.strip():
            self.suggestions = []
            return

        try:
            payload = await self.gateway.suggest(query)
        except ClientError as exc:
            _logger.warning("Error fetching suggestions: %s", exc)
            payload = None

        if generation != self._generation:
            _logger.debug("Dropping stale suggestions for %r", query)
            return
        self.suggestions = parse_suggestions(payload)

    async def select(self, suggestion: Suggestion) -> None:
        if not suggestion.uri:
            return
        try:
            payload = await self.gateway.geocode(suggestion.uri)
            location = parse_geocode_position(payload)
        except ClientError as exc:
            _logger.warning("Error fetching location details: %s", exc)
            self.error = GEOCODE_FAILED_MESSAGE
            return

        self._debouncer.cancel()
        self._generation += 1
        self.error = None
        self.query = ""
        self.suggestions = []
        self.location = location

    def on_map_move(self, center: tuple[float, float]) -> None:
        self.location = Location(center=center, zoom=self.location.zoom)
