"""Protocol interfaces for the collaborators around the navigation cache.

The controller and the registry reference these protocols, not concrete
implementations. This allows:
- Tests to script engine completion order and failures
- The bundled headless document (belafonte.dom) and loopback engine
  (belafonte.loopback) to be swapped for a real browser or swarm adapter
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from belafonte.models.content import NavigationState


class SwarmHandle(Protocol):
    """Engine-owned handle for one joined or published swarm."""

    content_id: str

    async def ready(self) -> bytes:
        """Return the full verified content.

        Raises ``SessionFailure`` on unrecoverable transport failure.
        """
        ...


class SwarmEngine(Protocol):
    """Interface for the peer-swarm transport."""

    async def join(self, locator: str) -> SwarmHandle: ...

    async def publish(
        self,
        content: bytes,
        *,
        name: str,
        announce_list: list[list[str]],
    ) -> SwarmHandle: ...


class CacheProtocol(Protocol):
    """Interface for the resource cache."""

    def get(self, content_id: str) -> str | None: ...

    def put(self, content_id: str, body: str) -> bool: ...


class FetcherProtocol(Protocol):
    """Interface for the origin fetcher used when seeding."""

    async def fetch(self, url: str) -> bytes: ...


class EventProtocol(Protocol):
    default_prevented: bool

    def prevent_default(self) -> None: ...


class PopStateEventProtocol(Protocol):
    state: NavigationState | None


class AnchorProtocol(Protocol):
    """A link element. ``href`` is absolute; ``on_click`` is a single slot."""

    href: str
    origin: str
    on_click: Callable[[EventProtocol], None] | None


class DocumentProtocol(Protocol):
    url: str
    origin: str
    title: str

    def anchors(self) -> Sequence[AnchorProtocol]: ...

    @property
    def markup(self) -> str: ...

    def replace_markup(self, markup: str) -> None: ...


class HistoryProtocol(Protocol):
    def push_state(self, state: NavigationState, title: str, url: str) -> None: ...

    def replace_state(self, state: NavigationState, title: str, url: str) -> None: ...

    def set_popstate_handler(
        self, handler: Callable[[PopStateEventProtocol], None] | None
    ) -> None: ...
