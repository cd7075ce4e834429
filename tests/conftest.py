"""Shared test fixtures for the belafonte test suite."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from belafonte.cache import ResourceCache
from belafonte.directory import ContentDirectory, load_directory
from belafonte.errors import SessionFailure
from belafonte.magnet import parse_magnet_uri
from belafonte.sessions import SessionRegistry

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

ANNOUNCE_LIST = [["wss://tracker.example"]]

SITE = {
    "http://site.test/a": "HASH_A",
    "http://site.test/b": "HASH_B",
    "http://site.test/c": "HASH_C",
}

PAGE_A = (
    "<html><head><title>Test 1</title></head><body>"
    '<a href="/b">Test 2</a>'
    '<a href="/missing">Missing</a>'
    '<a href="http://elsewhere.test/b">Elsewhere</a>'
    "</body></html>"
)
PAGE_B = (
    "<html><head><title>Test 2</title></head><body>"
    '<a href="/a#top">Test 1</a>'
    '<a href="c">Test 3</a>'
    "</body></html>"
)
PAGE_C = "<html><head><title>Test 3</title></head><body><p>leaf</p></body></html>"


class ScriptedHandle:
    def __init__(self, content_id: str, waiter: asyncio.Future[bytes]) -> None:
        self.content_id = content_id
        self._waiter = waiter

    async def ready(self) -> bytes:
        return await asyncio.shield(self._waiter)


class ScriptedEngine:
    """SwarmEngine whose transfers finish only when the test says so.

    Published content is assigned the id given in ``ids`` for its name, so
    seeding agrees with the site metadata.
    """

    def __init__(self, ids: dict[str, str] | None = None) -> None:
        self.ids = dict(ids or {})
        self.joined: list[str] = []
        self.published: list[tuple[str, bytes]] = []
        self.publish_error: Exception | None = None
        self._waiters: dict[str, asyncio.Future[bytes]] = {}

    def _waiter(self, content_id: str) -> asyncio.Future[bytes]:
        if content_id not in self._waiters:
            self._waiters[content_id] = asyncio.get_running_loop().create_future()
        return self._waiters[content_id]

    async def join(self, locator: str) -> ScriptedHandle:
        self.joined.append(locator)
        content_id = parse_magnet_uri(locator).content_id
        return ScriptedHandle(content_id, self._waiter(content_id))

    async def publish(
        self,
        content: bytes,
        *,
        name: str,
        announce_list: list[list[str]],
    ) -> ScriptedHandle:
        if self.publish_error is not None:
            raise self.publish_error
        self.published.append((name, content))
        waiter = asyncio.get_running_loop().create_future()
        waiter.set_result(content)
        return ScriptedHandle(self.ids.get(name, "UNKNOWN"), waiter)

    def complete(self, content_id: str, data: bytes) -> None:
        self._waiter(content_id).set_result(data)

    def fail(self, content_id: str, message: str = "tracker unreachable") -> None:
        self._waiter(content_id).set_exception(SessionFailure(message))


class StaticFetcher:
    """FetcherProtocol serving fixed pages, recording every request."""

    def __init__(self, pages: dict[str, str] | None = None) -> None:
        self.pages = dict(pages or {})
        self.requests: list[str] = []
        self.error: Exception | None = None

    async def fetch(self, url: str) -> bytes:
        self.requests.append(url)
        if self.error is not None:
            raise self.error
        return self.pages[url].encode("utf-8")


@pytest.fixture()
def site() -> dict[str, str]:
    """Site metadata: page URL → content id."""
    return dict(SITE)


@pytest.fixture()
def pages() -> dict[str, str]:
    """Page markup keyed by URL. a links to b, b links to a and c."""
    return {
        "http://site.test/a": PAGE_A,
        "http://site.test/b": PAGE_B,
        "http://site.test/c": PAGE_C,
    }


@pytest.fixture()
def directory() -> ContentDirectory:
    return load_directory(SITE)


@pytest.fixture()
def cache() -> ResourceCache:
    return ResourceCache()


@pytest.fixture()
def engine() -> ScriptedEngine:
    return ScriptedEngine(ids=SITE)


@pytest.fixture()
def fetcher(pages: dict[str, str]) -> StaticFetcher:
    return StaticFetcher(pages)


@pytest.fixture()
async def registry(
    engine: ScriptedEngine, cache: ResourceCache
) -> AsyncGenerator[SessionRegistry, None]:
    registry = SessionRegistry(engine, cache, ANNOUNCE_LIST)
    yield registry
    await registry.close()


@pytest.fixture()
def settle() -> Callable[[], Awaitable[None]]:
    """Let pending background tasks run until they block."""

    async def _settle() -> None:
        for _ in range(10):
            await asyncio.sleep(0)

    return _settle
