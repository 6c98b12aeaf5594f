"""Request composition: payload filtering, path templating and body encoding."""

from __future__ import annotations

import json
import os
import re
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from collections.abc import Collection, Mapping

PATH_PLACEHOLDER = re.compile(r":(gallery|meta)\b")

PATH_DEFAULTS: dict[str, str] = {
    "gallery": "default",
    "meta": "",
}

BINARY_CONTENT_TYPE = "application/octet-stream"


def build_body(
    allowed_keys: Collection[str],
    options: Mapping[str, Any],
    required: Mapping[str, Any],
) -> dict[str, Any]:
    """Build the request payload for a call.

    Options outside ``allowed_keys`` are dropped, then ``required`` is laid
    on top so mandatory fields always win over same-named options.
    """
    body = {key: value for key, value in options.items() if key in allowed_keys}
    body.update(required)
    return body


def build_path(template: str, options: Mapping[str, Any]) -> str:
    """Substitute ``:gallery`` and ``:meta`` in a path template.

    Missing (or None) options fall back to ``"default"`` for the gallery and
    to an empty string for meta.
    """

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        value = options.get(name)
        return PATH_DEFAULTS[name] if value is None else str(value)

    return PATH_PLACEHOLDER.sub(_substitute, template)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def _is_binary(value: object) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview)) or callable(getattr(value, "read", None))


def _plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    return value


def _file_part(name: str, value: Any) -> tuple[str, Any, str]:
    if isinstance(value, (bytearray, memoryview)):
        value = bytes(value)
    filename = os.path.basename(str(getattr(value, "name", "") or "")) or name
    return filename, value, BINARY_CONTENT_TYPE


def _form_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


def encode_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return httpx request kwargs for a payload.

    Payloads holding binary values (raw photo bytes or open files) go out as
    multipart/form-data; everything else is sent as JSON.
    """
    plain = {key: _plain(value) for key, value in payload.items()}
    files = {key: _file_part(key, value) for key, value in plain.items() if _is_binary(value)}
    if not files:
        return {"json": plain}

    data = {key: _form_value(value) for key, value in plain.items() if key not in files and value is not None}
    return {"data": data, "files": files}
