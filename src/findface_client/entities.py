"""Typed entities returned by the FindFace API and the JSON-to-entity mapper."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, ValidationError

from findface_client.errors import MappingError

Coordinate = StrictInt | StrictFloat


class BoundingBox(BaseModel):
    """A rectangle on a photo, usually a face's bounding box.

    ``(x1, y1)`` is the top-left corner and ``(x2, y2)`` the bottom-right one.
    The ordering is not enforced.
    """

    model_config = ConfigDict(frozen=True)

    x1: Coordinate
    y1: Coordinate
    x2: Coordinate
    y2: Coordinate

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1


class Face(BaseModel):
    """A human face stored by the service.

    Several faces may come from a single photo, and different photos of the
    same person are different faces. None of the client operations return
    this record yet; it documents the stored-face shape.
    """

    model_config = ConfigDict(frozen=True)

    id: int | str
    timestamp: str | None = None
    photo: str | None = None
    photo_hash: str | None = None
    thumbnail: str | None = None
    bbox: BoundingBox | None = None
    meta: dict[str, Any] = Field(default_factory=dict)
    galleries: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def _canonical_key(key: object) -> str:
    return str(key).strip().lstrip(":").lower().replace("-", "_")


def normalize_keys(record: Mapping[Any, Any]) -> dict[str, Any]:
    """Return a copy of ``record`` with keys in canonical form.

    ``"X1"``, ``":x1"`` and ``" x1 "`` all become ``"x1"``.

    Raises:
        MappingError: If two keys share a canonical form.
    """
    normalized: dict[str, Any] = {}
    for key, value in record.items():
        canonical = _canonical_key(key)
        if canonical in normalized:
            raise MappingError(f"Ambiguous key {key!r}: more than one field maps to '{canonical}'")
        normalized[canonical] = value
    return normalized


def get_field(body: Any, name: str) -> Any:
    """Return ``body[name]``, raising MappingError if the body has no such field."""
    if not isinstance(body, Mapping) or name not in body:
        raise MappingError(f"Response has no '{name}' field")
    return body[name]


def to_bounding_box(record: Any) -> BoundingBox:
    """Build a BoundingBox from a JSON object with x1, y1, x2 and y2."""
    if not isinstance(record, Mapping):
        raise MappingError(f"Expected a bounding box object, got {type(record).__name__}")
    try:
        return BoundingBox.model_validate(normalize_keys(record))
    except ValidationError as exc:
        fields = ", ".join(dict.fromkeys(str(err["loc"][0]) for err in exc.errors() if err["loc"]))
        raise MappingError(f"Invalid bounding box {dict(record)!r}: bad or missing {fields}") from exc


def to_bounding_boxes(records: Any) -> list[BoundingBox]:
    """Map a JSON array of detected faces to bounding boxes, keeping order.

    Each element is either the box itself or an object holding it under
    ``bbox``.
    """
    if not isinstance(records, list):
        raise MappingError(f"Expected a list of faces, got {type(records).__name__}")
    boxes: list[BoundingBox] = []
    for record in records:
        if isinstance(record, Mapping):
            nested = normalize_keys(record).get("bbox")
            if isinstance(nested, Mapping):
                record = nested
        boxes.append(to_bounding_box(record))
    return boxes
