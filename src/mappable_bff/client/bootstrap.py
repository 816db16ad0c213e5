"""Key bootstrap state machine.

``NO_KEY -> KEY_SUBMITTED -> SCRIPT_LOADING -> MAP_READY``, with ``ERROR``
reachable from ``KEY_SUBMITTED`` and ``SCRIPT_LOADING``. ``ERROR`` is
recoverable only by submitting a key again; nothing is retried
automatically.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import Any, Protocol

from .errors import ClientError, RuntimeNotInitializedError
from .gateway import GatewayClient

_logger = logging.getLogger(__name__)

INVALID_KEY_MESSAGE = "Please enter a valid API key."
SET_KEY_FAILED_MESSAGE = "Failed to set API key. Please try again."
SCRIPT_FAILED_MESSAGE = "Failed to load the map script. Please check your API key."


class BootstrapState(str, Enum):
    NO_KEY = "no_key"
    KEY_SUBMITTED = "key_submitted"
    SCRIPT_LOADING = "script_loading"
    MAP_READY = "map_ready"
    ERROR = "error"


class ResourceLoader(Protocol):
    """Loads an external executable resource; raises on failure."""

    async def load(self, url: str) -> None:
        ...


class GatewayScriptLoader:
    """Loader that downloads the map script through the gateway."""

    def __init__(self, gateway: GatewayClient) -> None:
        self._gateway = gateway
        self.script: bytes | None = None

    async def load(self, url: str) -> None:
        self.script = await self._gateway.fetch_script()
        _logger.debug("Loaded %d bytes of map script from %s", len(self.script), url)


class MapRuntime:
    """Map SDK bindings, available only after :meth:`initialize`.

    *initializer* performs the SDK's own asynchronous start-up and returns
    the component bindings (``MMap``, ``MMapMarker``, ...).
    """

    def __init__(self, initializer: Callable[[], Awaitable[Mapping[str, Any]]] | None = None) -> None:
        self._initializer = initializer
        self._components: dict[str, Any] = {}
        self.initialized = False

    async def initialize(self) -> None:
        if self.initialized:
            return
        if self._initializer is not None:
            try:
                components = await self._initializer()
                self._components = dict(components)
            except ClientError:
                raise
            except Exception as exc:
                raise RuntimeNotInitializedError(f"Map runtime failed to initialize: {exc}") from exc
        self.initialized = True

    def component(self, name: str) -> Any:
        if not self.initialized:
            raise RuntimeNotInitializedError(f"Map runtime not initialized; cannot bind {name!r}")
        try:
            return self._components[name]
        except KeyError:
            raise RuntimeNotInitializedError(f"Map runtime has no component {name!r}") from None


class BootstrapFlow:
    def __init__(self, gateway: GatewayClient, loader: ResourceLoader, runtime: MapRuntime,
                 on_change: Callable[[BootstrapState], None] | None = None) -> None:
        self.gateway = gateway
        self.loader = loader
        self.runtime = runtime
        self.state = BootstrapState.NO_KEY
        self.error: str | None = None
        self._on_change = on_change

    def _transition(self, state: BootstrapState) -> None:
        _logger.debug("Bootstrap %s -> %s", self.state.value, state.value)
        self.state = state
        if self._on_change is not None:
            self._on_change(state)

    async def mount(self) -> None:
        """Skip the key prompt when the session already holds a key."""
        try:
            exists = await self.gateway.check_key()
        except ClientError as exc:
            _logger.warning("Error checking API key: %s", exc)
            return
        if exists:
            await self._load_map()

    async def submit_key(self, text: str) -> None:
        if self.state not in (BootstrapState.NO_KEY, BootstrapState.ERROR):
            _logger.debug("Ignoring key submission in state %s", self.state.value)
            return
        api_key = text.strip()
        if not api_key:
            self.error = INVALID_KEY_MESSAGE
            return

        self._transition(BootstrapState.KEY_SUBMITTED)
        try:
            await self.gateway.set_key(api_key)
        except ClientError as exc:
            _logger.warning("Error setting API key: %s", exc)
            self.error = SET_KEY_FAILED_MESSAGE
            self._transition(BootstrapState.ERROR)
            return
        self.error = None
        await self._load_map()

    async def _load_map(self) -> None:
        self._transition(BootstrapState.SCRIPT_LOADING)
        try:
            await self.loader.load(self.gateway.script_url)
            await self.runtime.initialize()
        except ClientError as exc:
            _logger.warning("Map script failed to load: %s", exc)
            self.error = SCRIPT_FAILED_MESSAGE
            self._transition(BootstrapState.ERROR)
            return
        self.error = None
        self._transition(BootstrapState.MAP_READY)
