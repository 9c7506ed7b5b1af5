"""Tests for rebound.server.handler — the ASGI front door."""

import logging

import pytest

from rebound.bundle import MakeRequestOptions, RouteBundle
from rebound.errors import BuilderUnavailable, NotFound
from rebound.http.request import Request
from rebound.http.response import Response, StreamingResponse
from rebound.server.handler import FrontDoor
from rebound.server.standalone import bundle_app
from rebound.testing import TestClient


def _door(handler) -> FrontDoor:
    async def get_handler():
        return handler

    return FrontDoor(get_handler, default_origin="http://localhost:3000")


class TestRequestTranslation:
    async def test_url_method_and_body_reach_handler(self) -> None:
        seen: list[Request] = []

        async def handler(request: Request) -> Response:
            seen.append(request)
            return Response("ok")

        async with TestClient(_door(handler)) as client:
            response = await client.post("/items?sort=asc", json={"name": "widget"})

        assert response.status == 200
        request = seen[0]
        assert request.method == "POST"
        assert request.url == "http://testserver/items?sort=asc"
        assert request.path == "/items"
        assert request.query.get("sort") == "asc"
        assert request.json() == {"name": "widget"}
        assert request.content_type == "application/json"
        assert request.route_params is None

    async def test_response_headers_and_status(self) -> None:
        async def handler(request: Request) -> Response:
            return Response.json({"created": True}, status=201).with_header("X-Id", "7")

        async with TestClient(_door(handler)) as client:
            response = await client.get("/")

        assert response.status == 201
        assert response.content_type == "application/json"
        assert response.header("x-id") == "7"
        assert response.text == '{"created": true}'

    async def test_streaming_response(self) -> None:
        async def chunks():
            yield "hello "
            yield "world"

        async def handler(request: Request) -> StreamingResponse:
            return StreamingResponse(chunks())

        async with TestClient(_door(handler)) as client:
            response = await client.get("/")

        assert response.text == "hello world"


class TestErrorResponses:
    async def test_unhandled_exception_is_generic_500(self, caplog) -> None:
        async def handler(request: Request) -> Response:
            raise RuntimeError("database password is hunter2")

        with caplog.at_level(logging.ERROR, logger="rebound.server"):
            async with TestClient(_door(handler)) as client:
                response = await client.get("/secret")

        assert response.status == 500
        assert response.text == "Internal server error"
        assert "hunter2" not in response.text
        assert "Unhandled exception: GET /secret" in caplog.text
        assert "hunter2" in caplog.text

    async def test_handler_source_failure_is_500(self) -> None:
        async def get_handler():
            raise RuntimeError("load failed")

        app = FrontDoor(get_handler, default_origin="http://localhost:3000")
        async with TestClient(app) as client:
            response = await client.get("/")
        assert response.status == 500
        assert response.text == "Internal server error"

    async def test_builder_unavailable_is_503(self) -> None:
        async def get_handler():
            raise BuilderUnavailable("No build became available within 1.0s")

        app = FrontDoor(get_handler, default_origin="http://localhost:3000")
        async with TestClient(app) as client:
            response = await client.get("/")
        assert response.status == 503
        assert response.text == "Builder unavailable"
        assert response.header("retry-after") == "1"

    async def test_http_error_keeps_status(self) -> None:
        async def handler(request: Request) -> Response:
            raise NotFound("No such widget")

        async with TestClient(_door(handler)) as client:
            response = await client.get("/widgets/9")
        assert response.status == 404
        assert response.text == "No such widget"

    async def test_unencodable_header_is_generic_500(self, caplog) -> None:
        async def handler(request: Request) -> Response:
            return Response("ok").with_header("X-Mood", "☕")

        with caplog.at_level(logging.ERROR, logger="rebound.server"):
            async with TestClient(_door(handler)) as client:
                response = await client.get("/coffee")

        assert response.status == 500
        assert response.text == "Internal server error"
        assert response.header("x-mood") is None
        assert "UnicodeEncodeError" in caplog.text

    @pytest.mark.parametrize("style", ["compact", "full", "minimal"])
    async def test_traceback_styles_all_log(self, style, monkeypatch, caplog) -> None:
        monkeypatch.setenv("REBOUND_TRACEBACK", style)

        async def handler(request: Request) -> Response:
            raise ValueError("styled")

        with caplog.at_level(logging.ERROR, logger="rebound.server"):
            async with TestClient(_door(handler)) as client:
                response = await client.get("/")
        assert response.status == 500
        assert "styled" in caplog.text


class TestLifespan:
    async def test_acknowledges_startup_and_shutdown(self) -> None:
        app = _door(lambda request: Response("ok"))
        incoming = [{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}]
        sent: list[dict] = []

        async def receive():
            return incoming.pop(0)

        async def send(message):
            sent.append(message)

        await app({"type": "lifespan"}, receive, send)
        assert [m["type"] for m in sent] == [
            "lifespan.startup.complete",
            "lifespan.shutdown.complete",
        ]


class TestBundleApp:
    async def test_serves_bundle_routes(self) -> None:
        bundle = RouteBundle({"/health": lambda request, ctx: "ok"})
        async with TestClient(bundle_app(bundle)) as client:
            assert (await client.get("/health")).text == "ok"
            missing = await client.get("/nope")
        assert missing.status == 404
        assert missing.text == "Not found"

    async def test_options_applied(self) -> None:
        bundle = RouteBundle({"/users": lambda request, ctx: "users"})
        options = MakeRequestOptions(
            remove_pathname_prefix="/api", automatically_remove_pathname_prefix=False
        )
        async with TestClient(bundle_app(bundle, options)) as client:
            response = await client.get("/api/users")
        assert response.text == "users"

    async def test_route_error_is_500(self) -> None:
        def boom(request, ctx):
            raise KeyError("missing")

        async with TestClient(bundle_app(RouteBundle({"/": boom}))) as client:
            response = await client.get("/")
        assert response.status == 500
        assert response.text == "Internal server error"
