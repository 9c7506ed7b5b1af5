"""End-to-end tests: bundler, RPC, headless server and uvicorn on a real socket."""

import asyncio
import textwrap
from pathlib import Path

import httpx
import pytest

from rebound.build import BuildFailure, BuildSuccess, start_headless_bundler
from rebound.bundle import RouteBundle
from rebound.config import ServerConfig
from rebound.errors import ConfigurationError
from rebound.rpc import open_channel, serve_channel
from rebound.server.dev import start_dev_server
from rebound.server.headless import start_headless_server
from rebound.server.standalone import serve_bundle

BUNDLE = """
    from rebound import Response, RouteBundle

    bundle = RouteBundle({
        "/health": lambda request, ctx: Response("VERSION"),
        "/api/{rest:path}": lambda request, ctx: Response("/".join(ctx.route_params["rest"])),
    })
"""

# Seconds a live test may spend on any single await
TIMEOUT = 5.0


class BundleSource:
    """Writes a bundle file; ``build()`` is the dev server's build function."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.version = "v1"
        self.broken = False
        self.builds = 0

    def build(self) -> str:
        self.builds += 1
        if self.broken:
            msg = "unexpected token"
            raise SyntaxError(msg)
        self.path.write_text(
            textwrap.dedent(BUNDLE).replace("VERSION", self.version), encoding="utf-8"
        )
        return str(self.path)


def _config(**overrides) -> ServerConfig:
    return ServerConfig(port=0, build_wait_timeout=TIMEOUT, **overrides)


class TestDevServer:
    async def test_serves_first_build(self, tmp_path: Path) -> None:
        source = BundleSource(tmp_path / "bundle.py")
        dev = await start_dev_server(source.build, config=_config())
        try:
            async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{dev.port}") as client:
                response = await client.get("/health", timeout=TIMEOUT)
                assert response.status_code == 200
                assert response.text == "v1"

                response = await client.get("/api/a/b", timeout=TIMEOUT)
                assert response.text == "a/b"

                response = await client.get("/nope", timeout=TIMEOUT)
                assert response.status_code == 404
                assert response.text == "Not found"
        finally:
            await dev.stop()

    async def test_rebuild_is_served_without_restart(self, tmp_path: Path) -> None:
        source = BundleSource(tmp_path / "bundle.py")
        dev = await start_dev_server(source.build, config=_config())
        try:
            async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{dev.port}") as client:
                assert (await client.get("/health", timeout=TIMEOUT)).text == "v1"
                assert (await client.get("/health", timeout=TIMEOUT)).text == "v1"
                assert dev.server.controller.load_count == 1

                source.version = "v2"
                await dev.bundler.rebuild()

                assert (await client.get("/health", timeout=TIMEOUT)).text == "v2"
                assert dev.server.controller.load_count == 2
        finally:
            await dev.stop()

    async def test_failed_build_then_fix(self, tmp_path: Path) -> None:
        source = BundleSource(tmp_path / "bundle.py")
        dev = await start_dev_server(source.build, config=_config())
        try:
            async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{dev.port}") as client:
                assert (await client.get("/health", timeout=TIMEOUT)).status_code == 200

                source.broken = True
                result = await dev.bundler.rebuild()
                assert isinstance(result, BuildFailure)

                response = await client.get("/health", timeout=TIMEOUT)
                assert response.status_code == 500
                assert response.text == (
                    "Could not build your app. Check your terminal for more information."
                )

                source.broken = False
                source.version = "v3"
                await dev.bundler.rebuild()
                assert (await client.get("/health", timeout=TIMEOUT)).text == "v3"
        finally:
            await dev.stop()

    async def test_callbacks(self, tmp_path: Path) -> None:
        source = BundleSource(tmp_path / "bundle.py")
        events: list[object] = []
        built = asyncio.Event()

        def on_build_end(result) -> None:
            events.append(result)
            built.set()

        dev = await start_dev_server(
            source.build,
            config=_config(),
            on_listening=lambda port: events.append(("listening", port)),
            on_build_start=lambda: events.append("start"),
            on_build_end=on_build_end,
        )
        try:
            await asyncio.wait_for(built.wait(), TIMEOUT)
            assert events[0] == ("listening", dev.port)
            assert events[1] == "start"
            assert isinstance(events[2], BuildSuccess)
            assert events[2].bundle_path == str(source.path)
        finally:
            await dev.stop()

    async def test_initial_bundle_path_skips_first_build(self, tmp_path: Path) -> None:
        prebuilt = tmp_path / "prebuilt.py"
        prebuilt.write_text(
            textwrap.dedent(BUNDLE).replace("VERSION", "seed"), encoding="utf-8"
        )
        source = BundleSource(tmp_path / "bundle.py")
        dev = await start_dev_server(source.build, config=_config(), initial_bundle_path=prebuilt)
        try:
            async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{dev.port}") as client:
                assert (await client.get("/health", timeout=TIMEOUT)).text == "seed"
            assert source.builds == 0
        finally:
            await dev.stop()

    async def test_sandbox_backend_with_middleware(self, tmp_path: Path) -> None:
        async def stamp(request, ctx, next):
            response = await next(request, ctx)
            return response.with_header("X-Served-By", "sandbox")

        source = BundleSource(tmp_path / "bundle.py")
        dev = await start_dev_server(
            source.build, config=_config(backend="sandbox"), middleware=[stamp]
        )
        try:
            async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{dev.port}") as client:
                response = await client.get("/health", timeout=TIMEOUT)
                assert response.text == "v1"
                assert response.headers["x-served-by"] == "sandbox"

                source.version = "v2"
                await dev.bundler.rebuild()
                assert (await client.get("/health", timeout=TIMEOUT)).text == "v2"
        finally:
            await dev.stop()

    async def test_unknown_backend_rejected(self, tmp_path: Path) -> None:
        source = BundleSource(tmp_path / "bundle.py")
        with pytest.raises(ConfigurationError):
            await start_dev_server(source.build, config=_config(backend="wasm"))


class TestHeadlessOverTcp:
    async def test_server_and_bundler_on_separate_channels(self, tmp_path: Path) -> None:
        source = BundleSource(tmp_path / "bundle.py")
        bundlers = []

        async def on_channel(channel) -> None:
            bundlers.append(await start_headless_bundler(source.build, channels=[channel]))

        rpc_server = await serve_channel(on_channel)
        rpc_port = rpc_server.sockets[0].getsockname()[1]
        channel = await open_channel("127.0.0.1", rpc_port)
        server = await start_headless_server(config=_config(), rpc_channel=channel)
        try:
            async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{server.port}") as client:
                assert (await client.get("/health", timeout=TIMEOUT)).text == "v1"
        finally:
            await server.stop()
            await channel.close()
            for bundler in bundlers:
                await bundler.stop()
            rpc_server.close()
            await rpc_server.wait_closed()

    async def test_builder_gone_is_503(self) -> None:
        accepted = []

        async def on_channel(channel) -> None:
            accepted.append(channel)

        rpc_server = await serve_channel(on_channel)
        rpc_port = rpc_server.sockets[0].getsockname()[1]
        channel = await open_channel("127.0.0.1", rpc_port)
        server = await start_headless_server(
            config=ServerConfig(port=0, build_wait_timeout=0.2), rpc_channel=channel
        )
        try:
            async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{server.port}") as client:
                response = await client.get("/health", timeout=TIMEOUT)
                assert response.status_code == 503
                assert response.text == "Builder unavailable"
        finally:
            await server.stop()
            await channel.close()
            for remote in accepted:
                await remote.close()
            rpc_server.close()
            await rpc_server.wait_closed()


class TestServeBundle:
    async def test_standalone_bundle(self) -> None:
        bundle = RouteBundle({"/health": lambda request, ctx: "standalone"})
        server = await serve_bundle(bundle, config=_config())
        try:
            async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{server.port}") as client:
                assert (await client.get("/health", timeout=TIMEOUT)).text == "standalone"
        finally:
            await server.stop()
