"""Navigation controller: serve intra-site navigation from the swarm cache.

Every same-origin link with a known content id gets a swarm session and a
click handler. A click on a cached page swaps the document content in place
and pushes a history entry; a popstate does the same swap without touching
the history stack. Anything not cached falls through to the browser's normal
navigation, which is indistinguishable from a plain site.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from belafonte.config import DEFAULT_MARKER
from belafonte.directory import strip_fragment
from belafonte.models.content import NavigationState

if TYPE_CHECKING:
    from collections.abc import Callable

    from belafonte.directory import ContentDirectory
    from belafonte.protocols import (
        CacheProtocol,
        DocumentProtocol,
        EventProtocol,
        HistoryProtocol,
        PopStateEventProtocol,
    )
    from belafonte.seeder import Seeder
    from belafonte.sessions import SessionRegistry, SwarmSession

log = structlog.get_logger()


class NavigationController:
    """Owns the document's navigation state for the lifetime of the client.

    Construction initialises the current history entry, joins the swarm of
    every link on the page and then seeds the page itself, so it must run
    inside an event loop.
    """

    def __init__(
        self,
        document: DocumentProtocol,
        history: HistoryProtocol,
        directory: ContentDirectory,
        sessions: SessionRegistry,
        cache: CacheProtocol,
        seeder: Seeder,
        *,
        marker: str = DEFAULT_MARKER,
        seed_from_network: bool = False,
    ) -> None:
        self._document = document
        self._history = history
        self._directory = directory
        self._sessions = sessions
        self._cache = cache
        self._seeder = seeder
        self._marker = marker
        self._watched: set[str] = set()

        # Give the first page view a well-formed state for back-navigation.
        current_url = strip_fragment(document.url)
        history.replace_state(NavigationState(url=current_url), document.title, current_url)
        history.set_popstate_handler(self.on_popstate)

        self.scan_links()
        self._seeder.seed(current_url, None if seed_from_network else document.markup)

    def scan_links(self) -> int:
        """Join the swarm of every known same-origin link and intercept its clicks.

        Safe to call repeatedly: sessions are single-flight and each anchor
        holds exactly one click handler. Returns the number of links
        intercepted.
        """
        origin = self._document.origin
        intercepted = 0
        for anchor in self._document.anchors():
            # Only links to this site are served from the swarm.
            if anchor.origin != origin:
                continue
            url = strip_fragment(anchor.href)
            content_id = self._directory.lookup(url)
            if content_id is None:
                continue

            session = self._sessions.get_or_join(content_id, url)
            if content_id not in self._watched:
                self._watched.add(content_id)
                self._sessions.on_complete(session, self._on_session_complete)

            anchor.on_click = self._click_handler(url)
            intercepted += 1

        log.debug("links_scanned", url=self._document.url, intercepted=intercepted)
        return intercepted

    def on_click(self, url: str, event: EventProtocol) -> None:
        self.load_page(url, event)

    def on_popstate(self, event: PopStateEventProtocol) -> None:
        # Entries created outside this controller carry no state.
        if event.state is None:
            return
        self.load_page(event.state.url)

    def load_page(self, url: str, event: EventProtocol | None = None) -> bool:
        """Replace the document with the cached page for ``url``.

        With an event (a click), default navigation is cancelled and a
        history entry is pushed. Returns False, leaving everything untouched,
        if the page is not cached.
        """
        content_id = self._directory.lookup(url)
        body = self._cache.get(content_id) if content_id is not None else None
        if body is None:
            log.debug("cache_miss", url=url, content_id=content_id)
            return False

        if event is not None:
            event.prevent_default()
            self._history.push_state(NavigationState(url=url), self._document.title, url)

        self._document.replace_markup(body)
        if self._marker:
            self._document.title = self._mark(self._document.title)
        log.info("page_served_from_cache", url=url, content_id=content_id, pushed=event is not None)

        # The injected document has fresh anchors.
        self.scan_links()
        return True

    def _mark(self, title: str) -> str:
        prefix = f"{self._marker} "
        if title == self._marker or title.startswith(prefix):
            return title
        return prefix + title

    def _click_handler(self, url: str) -> Callable[[EventProtocol], None]:
        def handler(event: EventProtocol) -> None:
            self.on_click(url, event)

        return handler

    def _on_session_complete(self, session: SwarmSession, body: str) -> None:
        log.info("page_available", url=session.name, content_id=session.content_id)
