"""Unit tests for belafonte.sessions.

The scripted engine keeps every transfer pending until the test completes or
fails it, so completion order is under test control.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest
from structlog.testing import capture_logs

from belafonte.errors import ErrorCode, FetchFailure, SessionFailure
from belafonte.magnet import parse_magnet_uri
from belafonte.sessions import SessionRegistry, SessionStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from belafonte.cache import ResourceCache
    from belafonte.sessions import SwarmSession

    from tests.conftest import ScriptedEngine

    Settle = Callable[[], Awaitable[None]]

URL_B = "http://site.test/b"


class TestGetOrJoin:
    async def test_same_turn_returns_identical_session(
        self, registry: SessionRegistry, engine: ScriptedEngine, settle: Settle
    ) -> None:
        first = registry.get_or_join("HASH_B", URL_B)
        second = registry.get_or_join("HASH_B", URL_B)
        assert first is second
        assert len(registry) == 1

        await settle()
        assert len(engine.joined) == 1

    async def test_join_uses_magnet_locator(
        self, registry: SessionRegistry, engine: ScriptedEngine, settle: Settle
    ) -> None:
        registry.get_or_join("HASH_B", URL_B)
        await settle()
        link = parse_magnet_uri(engine.joined[0])
        assert link.content_id == "HASH_B"
        assert link.name == URL_B
        assert link.trackers == ["wss://tracker.example"]

    async def test_new_session_is_joining(self, registry: SessionRegistry) -> None:
        session = registry.get_or_join("HASH_B", URL_B)
        assert session.status is SessionStatus.JOINING
        assert not session.done
        assert registry.get("HASH_B") is session

    async def test_distinct_ids_get_distinct_sessions(self, registry: SessionRegistry) -> None:
        a = registry.get_or_join("HASH_A", "http://site.test/a")
        b = registry.get_or_join("HASH_B", URL_B)
        assert a is not b
        assert {s.content_id for s in registry.sessions()} == {"HASH_A", "HASH_B"}


class TestCompletion:
    async def test_completion_populates_cache_before_handlers(
        self,
        registry: SessionRegistry,
        engine: ScriptedEngine,
        cache: ResourceCache,
        settle: Settle,
    ) -> None:
        seen: list[str | None] = []
        session = registry.get_or_join("HASH_B", URL_B)
        registry.on_complete(session, lambda s, body: seen.append(cache.get(s.content_id)))
        await settle()

        engine.complete("HASH_B", b"<html>b</html>")
        assert await session.wait() == "<html>b</html>"

        assert seen == ["<html>b</html>"]
        assert session.status is SessionStatus.COMPLETE

    async def test_each_handler_called_once(
        self, registry: SessionRegistry, engine: ScriptedEngine, settle: Settle
    ) -> None:
        calls: list[str] = []
        session = registry.get_or_join("HASH_B", URL_B)
        registry.on_complete(session, lambda s, body: calls.append("first"))
        registry.on_complete(session, lambda s, body: calls.append("second"))
        await settle()

        engine.complete("HASH_B", b"b")
        await session.wait()
        await settle()
        assert calls == ["first", "second"]

    async def test_handler_registered_after_completion_runs_immediately(
        self, registry: SessionRegistry, engine: ScriptedEngine, settle: Settle
    ) -> None:
        session = registry.get_or_join("HASH_B", URL_B)
        await settle()
        engine.complete("HASH_B", b"b")
        await session.wait()

        bodies: list[str] = []
        registry.on_complete(session, lambda s, body: bodies.append(body))
        assert bodies == ["b"]

    async def test_handler_error_does_not_stop_other_handlers(
        self, registry: SessionRegistry, engine: ScriptedEngine, settle: Settle
    ) -> None:
        def broken(session: SwarmSession, body: str) -> None:
            raise RuntimeError("boom")

        calls: list[str] = []
        session = registry.get_or_join("HASH_B", URL_B)
        registry.on_complete(session, broken)
        registry.on_complete(session, lambda s, body: calls.append(body))
        await settle()

        with capture_logs() as logs:
            engine.complete("HASH_B", b"b")
            await session.wait()

        assert calls == ["b"]
        assert any(entry["event"] == "completion_handler_error" for entry in logs)

    async def test_invalid_utf8_is_replaced(
        self, registry: SessionRegistry, engine: ScriptedEngine, settle: Settle
    ) -> None:
        session = registry.get_or_join("HASH_B", URL_B)
        await settle()
        engine.complete("HASH_B", b"caf\xe9")
        assert await session.wait() == "caf\ufffd"


class TestFailure:
    async def test_transport_error_marks_session_failed(
        self,
        registry: SessionRegistry,
        engine: ScriptedEngine,
        cache: ResourceCache,
        settle: Settle,
    ) -> None:
        calls: list[str] = []
        session = registry.get_or_join("HASH_B", URL_B)
        registry.on_complete(session, lambda s, body: calls.append(body))
        await settle()

        with capture_logs() as logs:
            engine.fail("HASH_B")
            assert await session.wait() is None

        assert session.status is SessionStatus.FAILED
        assert calls == []
        assert cache.get("HASH_B") is None
        failed = [entry for entry in logs if entry["event"] == "swarm_session_failed"]
        assert failed[0]["reason"] == "tracker unreachable"

    async def test_failed_session_is_not_retried(
        self, registry: SessionRegistry, engine: ScriptedEngine, settle: Settle
    ) -> None:
        session = registry.get_or_join("HASH_B", URL_B)
        await settle()
        engine.fail("HASH_B")
        await session.wait()

        assert registry.get_or_join("HASH_B", URL_B) is session
        await settle()
        assert len(engine.joined) == 1

    async def test_handler_on_failed_session_never_runs(
        self, registry: SessionRegistry, engine: ScriptedEngine, settle: Settle
    ) -> None:
        session = registry.get_or_join("HASH_B", URL_B)
        await settle()
        engine.fail("HASH_B")
        await session.wait()

        calls: list[str] = []
        registry.on_complete(session, lambda s, body: calls.append(body))
        assert calls == []

    async def test_unexpected_engine_error_fails_session(
        self, cache: ResourceCache, settle: Settle
    ) -> None:
        class BrokenEngine:
            async def join(self, locator: str) -> None:
                raise RuntimeError("socket exploded")

            async def publish(self, content: bytes, **kwargs: object) -> None:
                raise RuntimeError("socket exploded")

        registry = SessionRegistry(BrokenEngine(), cache, [])
        session = registry.get_or_join("HASH_B", URL_B)
        assert await session.wait() is None
        assert session.status is SessionStatus.FAILED
        await registry.close()


class TestStartSeed:
    async def test_seed_publishes_and_completes(
        self,
        registry: SessionRegistry,
        engine: ScriptedEngine,
        cache: ResourceCache,
    ) -> None:
        async def load() -> bytes:
            return b"<html>b</html>"

        session = registry.start_seed("HASH_B", URL_B, load)
        assert session is not None
        assert session.status is SessionStatus.SEEDING

        assert await session.wait() == "<html>b</html>"
        assert session.status is SessionStatus.COMPLETE
        assert engine.published == [(URL_B, b"<html>b</html>")]
        assert cache.get("HASH_B") == "<html>b</html>"

    async def test_seed_refused_when_session_exists(self, registry: SessionRegistry) -> None:
        async def load() -> bytes:
            return b"b"

        joined = registry.get_or_join("HASH_B", URL_B)
        assert registry.start_seed("HASH_B", URL_B, load) is None
        assert registry.get("HASH_B") is joined

    async def test_join_during_seed_returns_seeding_session(
        self, registry: SessionRegistry
    ) -> None:
        async def load() -> bytes:
            return b"b"

        seeding = registry.start_seed("HASH_B", URL_B, load)
        assert registry.get_or_join("HASH_B", URL_B) is seeding

    async def test_fetch_failure_falls_back_to_join(
        self,
        registry: SessionRegistry,
        engine: ScriptedEngine,
        cache: ResourceCache,
        settle: Settle,
    ) -> None:
        async def load() -> bytes:
            raise FetchFailure("HTTP 503 fetching http://site.test/b")

        with capture_logs() as logs:
            session = registry.start_seed("HASH_B", URL_B, load)
            await settle()

        assert session is not None
        assert session.status is SessionStatus.JOINING
        assert engine.published == []
        assert len(engine.joined) == 1
        aborted = [entry for entry in logs if entry["event"] == "seed_aborted"]
        assert aborted[0]["code"] == ErrorCode.FETCH_FAILED

        engine.complete("HASH_B", b"from peers")
        assert await session.wait() == "from peers"
        assert cache.get("HASH_B") == "from peers"

    async def test_unexpected_load_error_falls_back_to_join(
        self,
        registry: SessionRegistry,
        engine: ScriptedEngine,
        settle: Settle,
    ) -> None:
        async def load() -> bytes:
            raise RuntimeError("boom")

        with capture_logs() as logs:
            session = registry.start_seed("HASH_B", URL_B, load)
            await settle()

        assert session is not None
        assert session.status is SessionStatus.JOINING
        assert engine.published == []
        assert len(engine.joined) == 1
        assert any(entry["event"] == "seed_load_error" for entry in logs)

        engine.complete("HASH_B", b"from peers")
        assert await session.wait() == "from peers"

    async def test_publish_failure_keeps_cached_body(
        self,
        registry: SessionRegistry,
        engine: ScriptedEngine,
        cache: ResourceCache,
    ) -> None:
        async def load() -> bytes:
            return b"<html>b</html>"

        engine.publish_error = SessionFailure("no trackers reachable")
        session = registry.start_seed("HASH_B", URL_B, load)
        assert session is not None

        assert await session.wait() is None
        assert session.status is SessionStatus.FAILED
        assert cache.get("HASH_B") == "<html>b</html>"

    async def test_content_id_mismatch_is_logged(
        self, registry: SessionRegistry, engine: ScriptedEngine
    ) -> None:
        async def load() -> bytes:
            return b"b"

        engine.ids[URL_B] = "HASH_OTHER"
        with capture_logs() as logs:
            session = registry.start_seed("HASH_B", URL_B, load)
            assert session is not None
            await session.wait()

        mismatch = [entry for entry in logs if entry["event"] == "seed_content_id_mismatch"]
        assert mismatch[0]["expected"] == "HASH_B"
        assert mismatch[0]["actual"] == "HASH_OTHER"
        assert registry.get("HASH_B") is session


class TestClose:
    async def test_close_cancels_pending_sessions(
        self, engine: ScriptedEngine, cache: ResourceCache, settle: Settle
    ) -> None:
        registry = SessionRegistry(engine, cache, [])
        session = registry.get_or_join("HASH_B", URL_B)
        await settle()

        await registry.close()
        assert len(registry) == 0
        with pytest.raises(asyncio.CancelledError):
            await session.wait()
