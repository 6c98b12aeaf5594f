"""Response validation and error classification."""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from findface_client.errors import ClientError, MappingError, TransportError

logger = logging.getLogger(__name__)

_JSON_MEDIA_TYPE = re.compile(r"\bjson$")


def decode_body(response: httpx.Response) -> Any:
    """Decode a response body: JSON for JSON media types, text otherwise.

    Raises:
        ValueError: If a JSON response cannot be parsed.
    """
    media_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
    if not _JSON_MEDIA_TYPE.search(media_type) or not response.content:
        return response.text
    return response.json()


def validate_response(response: httpx.Response) -> Any:
    """Return the decoded body of a successful response.

    The service sometimes reports errors inside an HTTP 200, so both layers
    are checked: a body carrying ``code`` is a ClientError whatever the
    status, and any remaining 4xx/5xx is a TransportError.

    Raises:
        ClientError: If the body is an error object.
        TransportError: If the status is 4xx/5xx and the body is not an error object.
        MappingError: If a successful response carries malformed JSON.
    """
    try:
        body = decode_body(response)
    except ValueError as exc:
        if response.is_error:
            raise TransportError(
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            ) from exc
        raise MappingError("Response body is not valid JSON") from exc

    if isinstance(body, dict) and "code" in body:
        logger.debug("Service error %s (HTTP %s)", body["code"], response.status_code)
        raise ClientError(body, status_code=response.status_code)

    if response.is_error:
        raise TransportError(
            f"HTTP {response.status_code}",
            status_code=response.status_code,
            body=body,
        )
    return body
