"""Error taxonomy for the gateway.

Every error carries the HTTP status and the public message the client is
allowed to see. Nothing upstream-specific ever goes into ``message``.
"""

from __future__ import annotations


class MapProxyError(Exception):
    """Base exception for all gateway errors."""

    status_code: int = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        if status_code is not None:
            self.status_code = status_code
        self.message = message
        super().__init__(message)


class ValidationError(MapProxyError):
    """A required input is missing or empty."""

    status_code = 400


class ResourcePathError(ValidationError):
    """Tile sub-path would escape the tile host or its path prefix."""


class SessionKeyError(MapProxyError):
    """No API key has been stored in the caller's session."""

    status_code = 400

    def __init__(self, message: str = "API key is not set.") -> None:
        super().__init__(message)


class UpstreamError(MapProxyError):
    """Network or HTTP failure while talking to a Mappable host."""

    status_code = 500

    def __init__(self, message: str, *, endpoint: str = "") -> None:
        self.endpoint = endpoint
        super().__init__(message)
