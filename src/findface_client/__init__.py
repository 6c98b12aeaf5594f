"""Python client for the FindFace face recognition API."""

from findface_client.client import AsyncFindFaceClient, FindFaceClient
from findface_client.config import Settings, get_settings
from findface_client.entities import BoundingBox, Face
from findface_client.errors import (
    ClientError,
    ConfigurationError,
    FindFaceError,
    MappingError,
    TransportError,
)
from findface_client.transport.connection import API_VERSION, ENDPOINT_URI

__version__ = "0.1.0"

__all__ = [
    "API_VERSION",
    "ENDPOINT_URI",
    "AsyncFindFaceClient",
    "BoundingBox",
    "ClientError",
    "ConfigurationError",
    "Face",
    "FindFaceClient",
    "FindFaceError",
    "MappingError",
    "Settings",
    "TransportError",
    "get_settings",
]
