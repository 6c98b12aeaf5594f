"""FindFace API clients.

Architecture:
    detect/verify/identify -> build_body/build_path -> httpx client (memoized)
        -> validate_response -> entity mapping

Both clients share settings handling and the lazily built connection; they
differ only in the httpx flavour they drive.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import httpx
from pydantic import ValidationError

from findface_client.config import Settings, get_settings
from findface_client.entities import BoundingBox, get_field, to_bounding_boxes
from findface_client.errors import ConfigurationError, TransportError
from findface_client.transport.connection import create_async_client, create_client
from findface_client.transport.request import build_body, build_path, encode_payload
from findface_client.transport.response import validate_response

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

logger = logging.getLogger(__name__)

DETECT_PATH = "detect/"
VERIFY_PATH = "verify/"
IDENTIFY_PATH = "faces/gallery/:gallery/identify/"

VERIFY_OPTIONS = frozenset({"bbox1", "bbox2", "threshold", "mf_selector"})
IDENTIFY_OPTIONS = frozenset({"bbox", "threshold", "n", "mf_selector"})

ConnectionT = TypeVar("ConnectionT", httpx.Client, httpx.AsyncClient)


class _BaseClient(ABC, Generic[ConnectionT]):
    """Settings ownership and the once-built shared connection.

    The client works on its own copy of the settings, so changes made to the
    caller's object (or through another client) never reach a cached
    connection. ``configure`` is the only way to change them.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings.model_copy() if settings is not None else get_settings()
        self._lock = threading.RLock()
        self._connection: ConnectionT | None = None
        self._retired: list[ConnectionT] = []
        self._in_flight: dict[ConnectionT, int] = {}

    @property
    def settings(self) -> Settings:
        """A snapshot of the current settings; assigning to it has no effect on the client."""
        with self._lock:
            return self._settings.model_copy()

    def configure(self, mutator: Callable[[Settings], object]) -> bool:
        """Apply ``mutator`` to a copy of the settings and swap it in.

        Values are validated as they are assigned. If the mutator fails the
        settings and the connection stay as they were. Otherwise the cached
        connection is dropped and the next call builds a fresh one; calls
        already in flight finish on the old one.

        Raises:
            ConfigurationError: If the mutator assigns an invalid value.
        """
        with self._lock:
            updated = self._settings.model_copy()
            try:
                mutator(updated)
            except ValidationError as exc:
                raise ConfigurationError(f"Invalid settings: {exc}") from exc
            self._settings = updated
            if self._connection is not None:
                self._retired.append(self._connection)
                self._connection = None
                logger.debug("Settings changed; connection will be rebuilt")
        return True

    @property
    def connection(self) -> ConnectionT:
        """Return the shared connection, building it on first use.

        Raises:
            ConfigurationError: If no access token is configured.
        """
        connection = self._connection
        if connection is not None:
            return connection

        with self._lock:
            # Double-check: another thread may have built it while we waited.
            if self._connection is None:
                self._connection = self._create_connection(self._settings)
                logger.info("FindFace connection ready")
            return self._connection

    @abstractmethod
    def _create_connection(self, settings: Settings) -> ConnectionT:
        """Build the httpx client for ``settings``."""

    # -- In-flight tracking -------------------------------------------------

    def _acquire(self) -> ConnectionT:
        with self._lock:
            connection = self.connection
            self._in_flight[connection] = self._in_flight.get(connection, 0) + 1
            return connection

    def _release(self, connection: ConnectionT) -> None:
        with self._lock:
            remaining = self._in_flight[connection] - 1
            if remaining:
                self._in_flight[connection] = remaining
            else:
                del self._in_flight[connection]

    def _idle_retired(self) -> list[ConnectionT]:
        """Take the retired connections no request is using any more."""
        with self._lock:
            idle = [c for c in self._retired if c not in self._in_flight]
            self._retired = [c for c in self._retired if c in self._in_flight]
        return idle

    def _drain(self) -> list[ConnectionT]:
        with self._lock:
            connections = list(self._retired)
            if self._connection is not None:
                connections.append(self._connection)
            self._retired.clear()
            self._connection = None
        return connections


def _identify_request(photo: Any, options: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    payload = build_body(IDENTIFY_OPTIONS, options, {"photo": photo})
    return build_path(IDENTIFY_PATH, options), payload


class FindFaceClient(_BaseClient[httpx.Client]):
    """Synchronous FindFace API client.

    Examples:
        client = FindFaceClient(Settings(access_token="..."))
        with client:
            boxes = client.detect(photo_bytes)
    """

    def _create_connection(self, settings: Settings) -> httpx.Client:
        return create_client(settings)

    def __enter__(self) -> FindFaceClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def configure(self, mutator: Callable[[Settings], object]) -> bool:
        """Apply ``mutator`` as the base client does, then close idle retired connections."""
        result = super().configure(mutator)
        self._close_idle()
        return result

    def close(self) -> None:
        """Close the current connection and any discarded by ``configure``."""
        for connection in self._drain():
            connection.close()

    def _close_idle(self) -> None:
        for connection in self._idle_retired():
            connection.close()

    def _post(self, path: str, payload: dict[str, Any]) -> Any:
        connection = self._acquire()
        try:
            response = connection.post(path, **encode_payload(payload))
        except httpx.RequestError as exc:
            raise TransportError(f"POST {path} failed: {exc}") from exc
        finally:
            self._release(connection)
            self._close_idle()
        return validate_response(response)

    def detect(self, photo: Any) -> list[BoundingBox]:
        """Detect faces on a photo and return their bounding boxes, in response order."""
        body = self._post(DETECT_PATH, {"photo": photo})
        return to_bounding_boxes(get_field(body, "faces"))

    def verify(self, photo1: Any, photo2: Any, **options: Any) -> Any:
        """Check whether two photos show the same person.

        Accepted options: bbox1, bbox2, threshold, mf_selector. The decoded
        response body is returned as-is.
        """
        payload = build_body(VERIFY_OPTIONS, options, {"photo1": photo1, "photo2": photo2})
        return self._post(VERIFY_PATH, payload)

    def identify(self, photo: Any, **options: Any) -> Any:
        """Search a gallery for faces matching the one on ``photo``.

        Accepted options: bbox, threshold, n, mf_selector, plus ``gallery``
        (defaults to "default") for the path. Returns the ``results`` field.
        """
        path, payload = _identify_request(photo, options)
        return get_field(self._post(path, payload), "results")


class AsyncFindFaceClient(_BaseClient[httpx.AsyncClient]):
    """Asynchronous FindFace API client.

    Examples:
        async with AsyncFindFaceClient(Settings(access_token="...")) as client:
            results = await client.identify(photo_bytes, gallery="staff", n=3)
    """

    def _create_connection(self, settings: Settings) -> httpx.AsyncClient:
        return create_async_client(settings)

    async def __aenter__(self) -> AsyncFindFaceClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the current connection and any discarded by ``configure``."""
        for connection in self._drain():
            await connection.aclose()

    async def _close_idle(self) -> None:
        # configure() cannot await, so retired connections are closed here.
        for connection in self._idle_retired():
            await connection.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        await self._close_idle()
        connection = self._acquire()
        try:
            response = await connection.post(path, **encode_payload(payload))
        except httpx.RequestError as exc:
            raise TransportError(f"POST {path} failed: {exc}") from exc
        finally:
            self._release(connection)
            await self._close_idle()
        return validate_response(response)

    async def detect(self, photo: Any) -> list[BoundingBox]:
        """Detect faces on a photo and return their bounding boxes, in response order."""
        body = await self._post(DETECT_PATH, {"photo": photo})
        return to_bounding_boxes(get_field(body, "faces"))

    async def verify(self, photo1: Any, photo2: Any, **options: Any) -> Any:
        """Check whether two photos show the same person; returns the raw body."""
        payload = build_body(VERIFY_OPTIONS, options, {"photo1": photo1, "photo2": photo2})
        return await self._post(VERIFY_PATH, payload)

    async def identify(self, photo: Any, **options: Any) -> Any:
        """Search a gallery for matches; returns the ``results`` field."""
        path, payload = _identify_request(photo, options)
        return get_field(await self._post(path, payload), "results")
