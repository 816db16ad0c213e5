"""Python counterpart of the browser UI flows, driven against a running BFF."""

from .bootstrap import BootstrapFlow, BootstrapState, GatewayScriptLoader, MapRuntime, ResourceLoader
from .errors import ClientError, ClientParseError, GatewayRequestError, RuntimeNotInitializedError
from .gateway import GatewayClient
from .models import DEFAULT_LOCATION, Location, Suggestion
from .search import Debouncer, SearchFlow, parse_geocode_position, parse_suggestions

__all__ = [
    "BootstrapFlow",
    "BootstrapState",
    "ClientError",
    "ClientParseError",
    "DEFAULT_LOCATION",
    "Debouncer",
    "GatewayClient",
    "GatewayRequestError",
    "GatewayScriptLoader",
    "Location",
    "MapRuntime",
    "ResourceLoader",
    "RuntimeNotInitializedError",
    "SearchFlow",
    "Suggestion",
    "parse_geocode_position",
    "parse_suggestions",
]
