"""Tests for rebound.build — the headless bundler and its serving-side client."""

import asyncio

import pytest

from rebound.build import BuildFailure, BuildSuccess, BuilderClient, HeadlessBundler
from rebound.build.bundler import start_headless_bundler
from rebound.build.result import from_wire, to_wire
from rebound.errors import BuilderUnavailable
from rebound.rpc import RpcPeer, loopback_pair


class TestWireFormat:
    def test_success_round_trip(self) -> None:
        result = BuildSuccess(bundle_path="/tmp/bundle.py", built_at_ms=10)
        assert from_wire(to_wire(result)) == result
        assert result.type == "success"

    def test_failure_round_trip(self) -> None:
        result = BuildFailure(built_at_ms=11, message="SyntaxError")
        assert from_wire(to_wire(result)) == result
        assert result.type == "failure"

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown build result type"):
            from_wire({"type": "partial", "built_at_ms": 1})


class TestHeadlessBundler:
    async def test_successful_build(self) -> None:
        bundler = HeadlessBundler(lambda: "/tmp/out.py")
        result = await bundler.rebuild()
        assert isinstance(result, BuildSuccess)
        assert result.bundle_path == "/tmp/out.py"
        assert bundler.latest == result
        assert bundler.build_count == 1

    async def test_async_build_function(self) -> None:
        async def build() -> str:
            await asyncio.sleep(0)
            return "/tmp/async.py"

        bundler = HeadlessBundler(build)
        result = await bundler.rebuild()
        assert isinstance(result, BuildSuccess)
        assert result.bundle_path == "/tmp/async.py"

    async def test_failure_is_data(self) -> None:
        def build() -> str:
            raise SyntaxError("unexpected token")

        bundler = HeadlessBundler(build)
        result = await bundler.rebuild()
        assert isinstance(result, BuildFailure)
        assert "unexpected token" in result.message
        assert bundler.latest == result

    async def test_none_output_is_failure(self) -> None:
        bundler = HeadlessBundler(lambda: None)
        result = await bundler.rebuild()
        assert isinstance(result, BuildFailure)

    async def test_timestamps_strictly_increase(self) -> None:
        bundler = HeadlessBundler(lambda: "/tmp/out.py")
        stamps = [(await bundler.rebuild()).built_at_ms for _ in range(5)]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == 5

    async def test_builds_never_overlap(self) -> None:
        active = 0
        peak = 0

        async def build() -> str:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return "/tmp/out.py"

        bundler = HeadlessBundler(build)
        results = await asyncio.gather(*(bundler.rebuild() for _ in range(3)))
        assert peak == 1
        stamps = [r.built_at_ms for r in results]
        assert stamps == sorted(stamps)

    async def test_initial_bundle_path_is_first_build(self, tmp_path) -> None:
        bundle = tmp_path / "prebuilt.py"
        bundler = HeadlessBundler(lambda: "/tmp/out.py", initial_bundle_path=bundle)
        assert isinstance(bundler.latest, BuildSuccess)
        assert bundler.latest.bundle_path == str(bundle)
        assert bundler.build_count == 0

    async def test_wait_blocks_until_first_build(self) -> None:
        release = asyncio.Event()

        async def build() -> str:
            await release.wait()
            return "/tmp/out.py"

        bundler = HeadlessBundler(build)
        bundler.schedule_rebuild()
        waiter = asyncio.create_task(bundler.wait_for_available_build())
        await asyncio.sleep(0.01)
        assert not waiter.done()

        release.set()
        payload = await asyncio.wait_for(waiter, 1.0)
        assert payload["type"] == "success"
        await bundler.stop()

    async def test_notifications_sent_to_attached_channels(self) -> None:
        bundler_end, server_end = loopback_pair()
        events: list[object] = []
        ended = asyncio.Event()

        def build_ended(payload):
            events.append(("end", payload["type"]))
            ended.set()

        listener = RpcPeer(
            server_end,
            {"on_build_start": lambda: events.append("start"), "on_build_end": build_ended},
        )
        listener.start()
        bundler = HeadlessBundler(lambda: "/tmp/out.py")
        bundler.attach(bundler_end)
        try:
            await bundler.rebuild()
            await asyncio.wait_for(ended.wait(), 1.0)
            assert events == ["start", ("end", "success")]
        finally:
            await bundler.stop()
            await listener.stop()

    async def test_start_builds_once(self) -> None:
        calls = 0

        def build() -> str:
            nonlocal calls
            calls += 1
            return "/tmp/out.py"

        bundler = await start_headless_bundler(build)
        await asyncio.wait_for(bundler.wait_for_available_build(), 1.0)
        assert calls == 1
        await bundler.stop()

    async def test_start_with_initial_bundle_skips_build(self) -> None:
        calls = 0

        def build() -> str:
            nonlocal calls
            calls += 1
            return "/tmp/out.py"

        bundler = await start_headless_bundler(build, initial_bundle_path="/tmp/seed.py")
        payload = await bundler.wait_for_available_build()
        assert payload["bundle_path"] == "/tmp/seed.py"
        assert calls == 0
        await bundler.stop()


class TestBuilderClient:
    async def test_returns_latest_build(self) -> None:
        bundler_end, server_end = loopback_pair()
        bundler = HeadlessBundler(lambda: "/tmp/out.py")
        bundler.attach(bundler_end)
        peer = RpcPeer(server_end)
        peer.start()
        try:
            await bundler.rebuild()
            build = await BuilderClient(peer, timeout=1.0).wait_for_available_build()
            assert build == bundler.latest
        finally:
            await peer.stop()
            await bundler.stop()

    async def test_timeout_is_builder_unavailable(self) -> None:
        bundler_end, server_end = loopback_pair()
        bundler = HeadlessBundler(lambda: "/tmp/out.py")  # never built
        bundler.attach(bundler_end)
        peer = RpcPeer(server_end)
        peer.start()
        try:
            with pytest.raises(BuilderUnavailable, match="within"):
                await BuilderClient(peer, timeout=0.05).wait_for_available_build()
        finally:
            await peer.stop()
            await bundler.stop()

    async def test_closed_channel_is_builder_unavailable(self) -> None:
        bundler_end, server_end = loopback_pair()
        peer = RpcPeer(server_end)
        peer.start()
        await bundler_end.close()
        try:
            with pytest.raises(BuilderUnavailable, match="unreachable"):
                await BuilderClient(peer, timeout=1.0).wait_for_available_build()
        finally:
            await peer.stop()

    async def test_malformed_payload_is_builder_unavailable(self) -> None:
        builder_end, server_end = loopback_pair()
        fake = RpcPeer(builder_end, {"wait_for_available_build": lambda: {"type": "??"}})
        fake.start()
        peer = RpcPeer(server_end)
        peer.start()
        try:
            with pytest.raises(BuilderUnavailable, match="Malformed"):
                await BuilderClient(peer, timeout=1.0).wait_for_available_build()
        finally:
            await peer.stop()
            await fake.stop()
