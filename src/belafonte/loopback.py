"""In-process swarm engine.

Peers attached to the same ``SwarmHub`` find each other's content by info
hash, the way peers on a shared tracker would. Nothing leaves the process:
the engine is meant for headless use, the hash CLI and tests. Content ids
are computed with :func:`belafonte.torrent.info_hash`.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict

import structlog

from belafonte.errors import ConfigurationError, SessionFailure
from belafonte.magnet import parse_magnet_uri
from belafonte.torrent import info_hash

log = structlog.get_logger()


class SwarmHub:
    """Shared content index for every LoopbackSwarm attached to it."""

    def __init__(self) -> None:
        self._content: dict[str, bytes] = {}
        self._waiters: defaultdict[str, list[asyncio.Future[bytes]]] = defaultdict(list)

    def announce(self, content_id: str, data: bytes) -> None:
        """Make ``data`` available under ``content_id`` and wake any waiters."""
        if content_id in self._content:
            return
        self._content[content_id] = data
        for waiter in self._waiters.pop(content_id, []):
            if not waiter.done():
                waiter.set_result(data)

    def request(self, content_id: str) -> asyncio.Future[bytes]:
        """Return a future resolved once some peer announces ``content_id``."""
        waiter: asyncio.Future[bytes] = asyncio.get_running_loop().create_future()
        data = self._content.get(content_id)
        if data is not None:
            waiter.set_result(data)
        else:
            self._waiters[content_id].append(waiter)
        return waiter

    def __contains__(self, content_id: object) -> bool:
        return content_id in self._content


class LoopbackHandle:
    def __init__(self, content_id: str, waiter: asyncio.Future[bytes]) -> None:
        self.content_id = content_id
        self._waiter = waiter

    async def ready(self) -> bytes:
        return await asyncio.shield(self._waiter)


class LoopbackSwarm:
    """SwarmEngine backed by a SwarmHub."""

    def __init__(self, hub: SwarmHub | None = None, *, piece_length: int | None = None) -> None:
        self.hub = hub if hub is not None else SwarmHub()
        self._piece_length = piece_length
        self._pending: list[asyncio.Future[bytes]] = []
        self._closed = False

    async def join(self, locator: str) -> LoopbackHandle:
        self._ensure_open()
        try:
            link = parse_magnet_uri(locator)
        except ConfigurationError as exc:
            raise SessionFailure(exc.message) from exc

        waiter = self.hub.request(link.content_id)
        if not waiter.done():
            self._pending.append(waiter)
        log.debug("loopback_join", content_id=link.content_id, available=waiter.done())
        return LoopbackHandle(link.content_id, waiter)

    async def publish(
        self,
        content: bytes,
        *,
        name: str,
        announce_list: list[list[str]],
    ) -> LoopbackHandle:
        self._ensure_open()
        content_id = info_hash(name, content, self._piece_length)
        self.hub.announce(content_id, content)
        log.debug("loopback_publish", content_id=content_id, name=name, size=len(content))
        return LoopbackHandle(content_id, self.hub.request(content_id))

    async def close(self) -> None:
        """Fail every transfer still waiting for content."""
        self._closed = True
        for waiter in self._pending:
            if not waiter.done():
                waiter.set_exception(SessionFailure("Swarm engine closed"))
        self._pending.clear()

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionFailure("Swarm engine closed")
