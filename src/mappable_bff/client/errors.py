"""Client-side error hierarchy."""

from __future__ import annotations


class ClientError(Exception):
    """Base exception for client flow errors."""


class GatewayRequestError(ClientError):
    """The BFF answered with a non-2xx status or could not be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, endpoint: str = "") -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class ClientParseError(ClientError):
    """An upstream payload relayed by the BFF did not have the expected shape."""


class RuntimeNotInitializedError(ClientError):
    """The map runtime failed to start, or a component was requested before it did."""
