"""Swarm session registry with single-flight join and seed.

Exactly one ``SwarmSession`` exists per content id for the lifetime of the
registry. Sessions are created synchronously (the check and the insert run
with no suspension point in between) and the engine work then continues in a
background asyncio task owned by the registry.

Completion is delivered by the registry itself, never by the engine: the
resource cache is populated first, then each registered handler is called
exactly once. A failed session stays registered as a terminal sink so a later
lookup is a no-op instead of a retry.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from belafonte.errors import FetchFailure, SessionFailure
from belafonte.magnet import build_magnet_uri

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine
    from typing import Any

    from belafonte.protocols import CacheProtocol, SwarmEngine, SwarmHandle

    CompletionHandler = Callable[["SwarmSession", str], None]
    ContentLoader = Callable[[], Awaitable[bytes]]

log = structlog.get_logger()


class SessionStatus(StrEnum):
    JOINING = "joining"
    SEEDING = "seeding"
    COMPLETE = "complete"
    FAILED = "failed"


class SwarmSession:
    """One joined or seeded swarm for a single content id.

    Must be created inside a running event loop.
    """

    def __init__(self, content_id: str, name: str, status: SessionStatus) -> None:
        self.content_id = content_id
        self.name = name
        self.status = status
        self.handle: SwarmHandle | None = None
        self._handlers: list[CompletionHandler] = []
        self._outcome: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()

    @property
    def done(self) -> bool:
        return self.status in (SessionStatus.COMPLETE, SessionStatus.FAILED)

    async def wait(self) -> str | None:
        """Wait for the session to finish. Returns the body, or None if it failed."""
        return await asyncio.shield(self._outcome)

    def __repr__(self) -> str:
        return f"SwarmSession(content_id={self.content_id!r}, status={self.status.value!r})"


class SessionRegistry:
    """Owns every SwarmSession and the tasks driving them."""

    def __init__(
        self,
        engine: SwarmEngine,
        cache: CacheProtocol,
        announce_list: list[list[str]],
    ) -> None:
        self._engine = engine
        self._cache = cache
        self._announce_list = announce_list
        self._sessions: dict[str, SwarmSession] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, content_id: str) -> SwarmSession | None:
        return self._sessions.get(content_id)

    def sessions(self) -> list[SwarmSession]:
        return list(self._sessions.values())

    def __contains__(self, content_id: object) -> bool:
        return content_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Session creation
    # ------------------------------------------------------------------

    def get_or_join(self, content_id: str, name: str) -> SwarmSession:
        """Return the session for ``content_id``, joining its swarm if there is none."""
        session = self._sessions.get(content_id)
        if session is not None:
            return session

        session = SwarmSession(content_id, name, SessionStatus.JOINING)
        self._sessions[content_id] = session
        self._spawn(session, self._join(session))
        return session

    def start_seed(
        self,
        content_id: str,
        name: str,
        load: ContentLoader,
    ) -> SwarmSession | None:
        """Reserve a seeding session and publish the bytes returned by ``load``.

        Returns None, and does nothing, if a session for ``content_id`` already
        exists in any state.
        """
        if content_id in self._sessions:
            return None

        session = SwarmSession(content_id, name, SessionStatus.SEEDING)
        self._sessions[content_id] = session
        self._spawn(session, self._seed(session, load))
        return session

    def on_complete(self, session: SwarmSession, handler: CompletionHandler) -> None:
        """Call ``handler(session, body)`` once, when the session completes.

        Called immediately if the session is already complete. Never called
        for a failed session.
        """
        if session.status is SessionStatus.COMPLETE:
            body = self._cache.get(session.content_id)
            if body is not None:
                self._notify(session, handler, body)
            return
        if session.status is SessionStatus.FAILED:
            return
        session._handlers.append(handler)

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, session: SwarmSession, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=f"swarm:{session.content_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _join(self, session: SwarmSession) -> None:
        locator = build_magnet_uri(session.content_id, session.name, self._announce_list)
        log.info("swarm_join_started", content_id=session.content_id, name=session.name)
        try:
            session.handle = await self._engine.join(locator)
            data = await session.handle.ready()
        except SessionFailure as exc:
            self._fail(session, reason=exc.message)
            return
        except Exception:
            log.warning("swarm_join_error", content_id=session.content_id, exc_info=True)
            self._fail(session, reason="unexpected_error")
            return

        self._complete(session, data.decode("utf-8", errors="replace"))

    async def _seed(self, session: SwarmSession, load: ContentLoader) -> None:
        try:
            data = await load()
        except FetchFailure as exc:
            # Seeding is best effort: fall back to fetching the page from peers.
            log.debug(
                "seed_aborted",
                content_id=session.content_id,
                url=session.name,
                code=exc.code,
                reason=exc.message,
            )
            session.status = SessionStatus.JOINING
            await self._join(session)
            return
        except Exception:
            log.warning("seed_load_error", content_id=session.content_id, exc_info=True)
            session.status = SessionStatus.JOINING
            await self._join(session)
            return

        body = data.decode("utf-8", errors="replace")
        self._cache.put(session.content_id, body)

        try:
            session.handle = await self._engine.publish(
                data,
                name=session.name,
                announce_list=self._announce_list,
            )
        except SessionFailure as exc:
            self._fail(session, reason=exc.message)
            return
        except Exception:
            log.warning("seed_publish_error", content_id=session.content_id, exc_info=True)
            self._fail(session, reason="unexpected_error")
            return

        if session.handle.content_id != session.content_id:
            log.warning(
                "seed_content_id_mismatch",
                url=session.name,
                expected=session.content_id,
                actual=session.handle.content_id,
            )

        log.info("seed_published", content_id=session.content_id, url=session.name)
        self._complete(session, body)

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def _complete(self, session: SwarmSession, body: str) -> None:
        # The cache must hold the body before any consumer hears about it.
        self._cache.put(session.content_id, body)
        session.status = SessionStatus.COMPLETE
        if not session._outcome.done():
            session._outcome.set_result(body)
        log.info("swarm_session_complete", content_id=session.content_id, size=len(body))

        handlers, session._handlers = session._handlers, []
        for handler in handlers:
            self._notify(session, handler, body)

    def _fail(self, session: SwarmSession, *, reason: str) -> None:
        session.status = SessionStatus.FAILED
        session._handlers.clear()
        if not session._outcome.done():
            session._outcome.set_result(None)
        log.warning("swarm_session_failed", content_id=session.content_id, reason=reason)

    def _notify(self, session: SwarmSession, handler: CompletionHandler, body: str) -> None:
        try:
            handler(session, body)
        except Exception:
            log.warning(
                "completion_handler_error",
                content_id=session.content_id,
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel in-flight joins and seeds and forget every session."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        for session in self._sessions.values():
            if not session._outcome.done():
                session._outcome.cancel()
        self._sessions.clear()
        log.debug("session_registry_closed", cancelled_tasks=len(tasks))
