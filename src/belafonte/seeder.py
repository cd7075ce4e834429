"""Seeder: share a page the client already holds.

Seeding implies possession, so when the content is handed in (the rendered
document) it is cached in the same synchronous turn, before the engine has
published anything. Otherwise the page is fetched from the origin first.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from belafonte.directory import ContentDirectory
    from belafonte.protocols import CacheProtocol, FetcherProtocol
    from belafonte.sessions import SessionRegistry, SwarmSession

log = structlog.get_logger()


class Seeder:
    def __init__(
        self,
        directory: ContentDirectory,
        sessions: SessionRegistry,
        cache: CacheProtocol,
        fetcher: FetcherProtocol,
    ) -> None:
        self._directory = directory
        self._sessions = sessions
        self._cache = cache
        self._fetcher = fetcher

    def seed(self, url: str, content: str | None = None) -> SwarmSession | None:
        """Publish the page at ``url`` into its swarm, at most once per process.

        Returns the new seeding session, or None if the URL is unknown or a
        session for its content id already exists.
        """
        content_id = self._directory.lookup(url)
        if content_id is None:
            log.debug("seed_skipped", url=url, reason="not_in_directory")
            return None

        if content is not None:
            data = content.encode("utf-8")

            async def load() -> bytes:
                return data

        else:

            async def load() -> bytes:
                return await self._fetcher.fetch(url)

        session = self._sessions.start_seed(content_id, url, load)
        if session is None:
            log.debug("seed_skipped", url=url, content_id=content_id, reason="session_exists")
            return None

        if content is not None:
            self._cache.put(content_id, content)
        log.info(
            "seed_started",
            url=url,
            content_id=content_id,
            source="document" if content is not None else "network",
        )
        return session
