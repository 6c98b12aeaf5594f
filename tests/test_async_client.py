"""Tests for the asynchronous client against an in-process fake FindFace service."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import pytest
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from findface_client.client import AsyncFindFaceClient
from findface_client.config import Settings
from findface_client.entities import BoundingBox
from findface_client.errors import ClientError, ConfigurationError, TransportError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

PHOTO = b"\xff\xd8\xff\xe0 fake jpeg"
OTHER_PHOTO = b"\xff\xd8\xff\xe0 someone else"
TOKEN = "secret-token"


def create_fake_service() -> FastAPI:
    """A minimal stand-in for the FindFace API, recording what it receives."""
    app = FastAPI()
    app.state.received = []

    async def _record(request: Request) -> dict[str, Any]:
        if request.headers.get("authorization") != f"Token {TOKEN}":
            raise PermissionError
        form = await request.form()
        fields: dict[str, Any] = {}
        for key, value in form.multi_items():
            fields[key] = await value.read() if isinstance(value, UploadFile) else value
        request.app.state.received.append({"path": request.url.path, "fields": fields})
        return fields

    @app.exception_handler(PermissionError)
    async def _unauthorized(request: Request, exc: PermissionError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"code": "UNAUTHORIZED", "reason": "Invalid token"},
        )

    @app.post("/v1/detect/")
    async def detect(request: Request) -> JSONResponse:
        fields = await _record(request)
        if fields["photo"] == b"":
            return JSONResponse(content={"code": "BAD_IMAGE", "reason": "Empty photo"})
        return JSONResponse(
            content={
                "faces": [
                    {"x1": 10, "y1": 20, "x2": 110, "y2": 140},
                    {"x1": 300, "y1": 40, "x2": 380, "y2": 150},
                ]
            }
        )

    @app.post("/v1/verify/")
    async def verify(request: Request) -> JSONResponse:
        fields = await _record(request)
        same = fields["photo1"] == fields["photo2"]
        return JSONResponse(
            content={
                "verified": same,
                "results": [{"confidence": 1.0 if same else 0.12, "threshold": fields.get("threshold")}],
            }
        )

    @app.post("/v1/faces/gallery/{gallery}/identify/")
    async def identify(gallery: str, request: Request) -> JSONResponse:
        fields = await _record(request)
        if gallery == "missing":
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"code": "BAD_PARAM", "reason": "Gallery does not exist"},
            )
        if gallery == "broken":
            return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=["internal"])
        limit = int(fields.get("n", 1))
        matches = [{"face": {"id": i, "galleries": [gallery]}, "confidence": 0.9 - i / 10} for i in range(limit)]
        return JSONResponse(content={"results": {"[10, 20, 110, 140]": matches}})

    return app


@pytest.fixture()
def service() -> FastAPI:
    return create_fake_service()


@pytest.fixture()
async def client(service: FastAPI) -> AsyncIterator[AsyncFindFaceClient]:
    settings = Settings(access_token=TOKEN, adapter=httpx.ASGITransport(app=service))
    async with AsyncFindFaceClient(settings) as ff:
        yield ff


class TestAsyncDetect:
    async def test_returns_boxes_in_order(self, client: AsyncFindFaceClient, service: FastAPI) -> None:
        boxes = await client.detect(PHOTO)
        assert boxes == [
            BoundingBox(x1=10, y1=20, x2=110, y2=140),
            BoundingBox(x1=300, y1=40, x2=380, y2=150),
        ]
        assert service.state.received == [{"path": "/v1/detect/", "fields": {"photo": PHOTO}}]

    async def test_error_in_success_response(self, client: AsyncFindFaceClient) -> None:
        with pytest.raises(ClientError) as exc_info:
            await client.detect(b"")
        assert exc_info.value.code == "BAD_IMAGE"
        assert exc_info.value.status_code == status.HTTP_200_OK


class TestAsyncVerify:
    async def test_passes_body_through(self, client: AsyncFindFaceClient, service: FastAPI) -> None:
        result = await client.verify(PHOTO, OTHER_PHOTO, threshold="strict", n=5)
        assert result == {"verified": False, "results": [{"confidence": 0.12, "threshold": "strict"}]}
        fields = service.state.received[0]["fields"]
        assert fields == {"photo1": PHOTO, "photo2": OTHER_PHOTO, "threshold": "strict"}

    async def test_same_photo(self, client: AsyncFindFaceClient) -> None:
        result = await client.verify(PHOTO, PHOTO)
        assert result["verified"] is True


class TestAsyncIdentify:
    async def test_default_gallery(self, client: AsyncFindFaceClient, service: FastAPI) -> None:
        results = await client.identify(PHOTO)
        assert results == {"[10, 20, 110, 140]": [{"face": {"id": 0, "galleries": ["default"]}, "confidence": 0.9}]}
        assert service.state.received[0]["path"] == "/v1/faces/gallery/default/identify/"

    async def test_gallery_and_limit(self, client: AsyncFindFaceClient, service: FastAPI) -> None:
        results = await client.identify(PHOTO, gallery="staff", n=3, bbox=[[10, 20, 110, 140]])
        matches = results["[10, 20, 110, 140]"]
        assert [m["face"]["galleries"] for m in matches] == [["staff"]] * 3
        fields = service.state.received[0]["fields"]
        assert fields == {"photo": PHOTO, "n": "3", "bbox": "[[10, 20, 110, 140]]"}

    async def test_unknown_gallery(self, client: AsyncFindFaceClient) -> None:
        with pytest.raises(ClientError, match="BAD_PARAM") as exc_info:
            await client.identify(PHOTO, gallery="missing")
        assert exc_info.value.status_code == status.HTTP_400_BAD_REQUEST

    async def test_server_failure(self, client: AsyncFindFaceClient) -> None:
        with pytest.raises(TransportError) as exc_info:
            await client.identify(PHOTO, gallery="broken")
        assert exc_info.value.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert exc_info.value.body == ["internal"]


class TestAsyncConfiguration:
    async def test_wrong_token_is_client_error(self, service: FastAPI) -> None:
        settings = Settings(access_token="wrong", adapter=httpx.ASGITransport(app=service))
        async with AsyncFindFaceClient(settings) as ff:
            with pytest.raises(ClientError, match="UNAUTHORIZED"):
                await ff.detect(PHOTO)

    async def test_missing_token(self, service: FastAPI) -> None:
        settings = Settings(access_token=None, adapter=httpx.ASGITransport(app=service))
        async with AsyncFindFaceClient(settings) as ff:
            with pytest.raises(ConfigurationError):
                await ff.identify(PHOTO)
        assert service.state.received == []

    async def test_sync_only_adapter_is_rejected(self) -> None:
        settings = Settings(access_token=TOKEN, adapter=httpx.HTTPTransport())
        async with AsyncFindFaceClient(settings) as ff:
            with pytest.raises(ConfigurationError, match="AsyncBaseTransport"):
                await ff.detect(PHOTO)

    async def test_configure_rebuilds_connection(self, client: AsyncFindFaceClient) -> None:
        first = client.connection
        assert client.configure(lambda s: setattr(s, "timeout", 10.0)) is True
        second = client.connection
        assert second is not first
        assert second.timeout.read == 10.0
        await client.detect(PHOTO)

    async def test_retired_connections_closed_on_next_request(self, client: AsyncFindFaceClient) -> None:
        previous = []
        for i in range(3):
            previous.append(client.connection)
            client.configure(lambda s, i=i: setattr(s, "log_headers", bool(i % 2)))

        await client.detect(PHOTO)
        assert all(connection.is_closed for connection in previous)
        assert client._retired == []

    async def test_shared_settings_stay_independent(self, service: FastAPI) -> None:
        shared = Settings(access_token=TOKEN, adapter=httpx.ASGITransport(app=service))
        async with AsyncFindFaceClient(shared) as first, AsyncFindFaceClient(shared) as second:
            first.configure(lambda s: setattr(s, "access_token", None))
            with pytest.raises(ConfigurationError):
                await first.detect(PHOTO)
            assert await second.detect(PHOTO)
