"""Exception hierarchy for the FindFace client."""

from __future__ import annotations

from typing import Any


class FindFaceError(Exception):
    """Base class for all errors raised by the client."""


class ConfigurationError(FindFaceError):
    """The client is not configured well enough to talk to the service."""


class TransportError(FindFaceError):
    """The HTTP exchange itself failed.

    Raised for network-level failures (connection refused, timeouts) and for
    4xx/5xx responses whose body does not carry a service error code.
    """

    def __init__(self, message: str, *, status_code: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ClientError(FindFaceError):
    """The service answered with an error object (a body carrying ``code``)."""

    def __init__(self, body: dict[str, Any], *, status_code: int | None = None) -> None:
        self.body = body
        self.code = body.get("code")
        self.reason = body.get("reason")
        self.status_code = status_code
        message = f"{self.code}: {self.reason}" if self.reason else str(self.code)
        super().__init__(message)


class MappingError(FindFaceError):
    """A response body does not have the shape the client expects."""
