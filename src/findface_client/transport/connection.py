"""Connection factory: httpx clients bound to the FindFace endpoint.

Each client carries the token authorization header, optional proxying, an
optional executor override and, when a logger sink is configured, event
hooks tracing every request and response through it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from findface_client.errors import ConfigurationError

if TYPE_CHECKING:
    from findface_client.config import Settings

logger = logging.getLogger(__name__)

API_VERSION = "1"
ENDPOINT_URI = f"https://api.findface.pro/v{API_VERSION}/"

_REDACTED = "Token [REDACTED]"


def authorization_header(settings: Settings) -> str:
    """Return the Authorization header value for the configured token."""
    token = settings.access_token.get_secret_value() if settings.access_token is not None else ""
    if not token:
        raise ConfigurationError("No access token specified")
    return f"Token {token}"


def connection_options(settings: Settings) -> dict[str, Any]:
    """Return the keyword arguments shared by the sync and async clients."""
    options: dict[str, Any] = {
        "base_url": ENDPOINT_URI,
        "headers": {"Authorization": authorization_header(settings)},
    }
    if settings.timeout is not None:
        options["timeout"] = settings.timeout

    if settings.adapter is not None:
        if settings.proxy is not None:
            logger.warning("Ignoring proxy %s: a transport adapter is configured", settings.proxy)
        options["transport"] = settings.adapter
    elif settings.proxy is not None:
        options["proxy"] = settings.proxy
    return options


# ---------------------------------------------------------------------------
# Request/response tracing
# ---------------------------------------------------------------------------


class TraceLogger:
    """Writes request and response traces to a caller-supplied logger."""

    def __init__(self, sink: logging.Logger, *, log_headers: bool = False) -> None:
        self._sink = sink
        self._log_headers = log_headers

    def _headers(self, headers: httpx.Headers) -> dict[str, str]:
        shown = dict(headers)
        if "authorization" in shown:
            shown["authorization"] = _REDACTED
        return shown

    def log_request(self, request: httpx.Request) -> None:
        self._sink.info("%s %s", request.method, request.url)
        if self._log_headers:
            self._sink.debug("Request headers: %s", self._headers(request.headers))
        if request.headers.get("content-type", "").startswith("multipart/"):
            self._sink.debug("Request body: <multipart, %s bytes>", request.headers.get("content-length", "?"))
        else:
            self._sink.debug("Request body: %s", request.content.decode("utf-8", errors="replace"))

    def log_response(self, response: httpx.Response) -> None:
        self._sink.info("Status %s", response.status_code)
        if self._log_headers:
            self._sink.debug("Response headers: %s", dict(response.headers))
        self._sink.debug("Response body: %s", response.text)

    # -- httpx event hooks --------------------------------------------------

    def request_hook(self, request: httpx.Request) -> None:
        self.log_request(request)

    def response_hook(self, response: httpx.Response) -> None:
        response.read()
        self.log_response(response)

    async def async_request_hook(self, request: httpx.Request) -> None:
        self.log_request(request)

    async def async_response_hook(self, response: httpx.Response) -> None:
        await response.aread()
        self.log_response(response)


def create_client(settings: Settings) -> httpx.Client:
    """Build a synchronous httpx client for the FindFace API."""
    options = connection_options(settings)
    if settings.adapter is not None and not isinstance(settings.adapter, httpx.BaseTransport):
        raise ConfigurationError("Adapter must be an httpx.BaseTransport for the synchronous client")

    if settings.logger is not None:
        trace = TraceLogger(settings.logger, log_headers=settings.log_headers)
        options["event_hooks"] = {
            "request": [trace.request_hook],
            "response": [trace.response_hook],
        }
    logger.debug("Connecting to %s", ENDPOINT_URI)
    return httpx.Client(**options)


def create_async_client(settings: Settings) -> httpx.AsyncClient:
    """Build an asynchronous httpx client for the FindFace API."""
    options = connection_options(settings)
    if settings.adapter is not None and not isinstance(settings.adapter, httpx.AsyncBaseTransport):
        raise ConfigurationError("Adapter must be an httpx.AsyncBaseTransport for the asynchronous client")

    if settings.logger is not None:
        trace = TraceLogger(settings.logger, log_headers=settings.log_headers)
        options["event_hooks"] = {
            "request": [trace.async_request_hook],
            "response": [trace.async_response_hook],
        }
    logger.debug("Connecting to %s", ENDPOINT_URI)
    return httpx.AsyncClient(**options)
