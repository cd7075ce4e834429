"""Headless document and history model.

A minimal stand-in for the browser surface the navigation controller drives:
an HTML document with link elements, click and popstate events, and a session
history stack. Markup is parsed with BeautifulSoup; rendering is out of scope.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from belafonte.directory import url_origin

if TYPE_CHECKING:
    from collections.abc import Callable

    from bs4 import Tag

    from belafonte.models.content import NavigationState


@dataclass
class ClickEvent:
    target: Anchor
    default_prevented: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True


@dataclass
class PopStateEvent:
    state: NavigationState | None


class Anchor:
    """An ``<a href>`` element with a single click handler slot."""

    def __init__(self, tag: Tag, base_url: str) -> None:
        self.tag = tag
        raw_href = str(tag["href"])
        try:
            self.href = urljoin(base_url, raw_href)
        except ValueError:
            # Malformed hrefs (e.g. a broken IPv6 host) stay as written.
            self.href = raw_href
        self.origin = url_origin(self.href)
        self.on_click: Callable[[ClickEvent], None] | None = None

    @property
    def text(self) -> str:
        return self.tag.get_text(strip=True)

    def __repr__(self) -> str:
        return f"Anchor(href={self.href!r})"


class HtmlDocument:
    """A parsed HTML page at a URL."""

    def __init__(self, url: str, markup: str) -> None:
        self.url = url
        self._load(markup)

    def _load(self, markup: str) -> None:
        # The original markup is served verbatim until the tree is mutated,
        # so seeding an untouched page publishes the exact bytes it was
        # loaded with.
        self._markup: str | None = markup
        self._soup = BeautifulSoup(markup, "html.parser")
        self._anchors = [Anchor(tag, self.url) for tag in self._soup.find_all("a", href=True)]

    @property
    def origin(self) -> str:
        return url_origin(self.url)

    @property
    def title(self) -> str:
        if self._soup.title is None or self._soup.title.string is None:
            return ""
        return str(self._soup.title.string)

    @title.setter
    def title(self, value: str) -> None:
        title_tag = self._soup.title
        if title_tag is None:
            title_tag = self._soup.new_tag("title")
            parent = self._soup.head or self._soup
            parent.insert(0, title_tag)
        title_tag.string = value
        self._markup = None

    def anchors(self) -> list[Anchor]:
        return list(self._anchors)

    def find_link(self, text: str) -> Anchor:
        """Return the first anchor whose text is ``text``."""
        for anchor in self._anchors:
            if anchor.text == text:
                return anchor
        raise LookupError(f"No link with text {text!r}")

    @property
    def markup(self) -> str:
        return self._markup if self._markup is not None else str(self._soup)

    def replace_markup(self, markup: str) -> None:
        """Replace the whole document. Previous anchors and handlers are dropped."""
        self._load(markup)

    def click(self, anchor: Anchor) -> ClickEvent:
        """Dispatch a click on ``anchor``.

        The caller performs the default navigation unless the returned event
        has ``default_prevented`` set.
        """
        event = ClickEvent(target=anchor)
        if anchor.on_click is not None:
            anchor.on_click(event)
        return event


@dataclass
class HistoryEntry:
    state: NavigationState | None
    title: str
    url: str


@dataclass
class BrowserHistory:
    """Session history for one document, with pushState/replaceState semantics."""

    document: HtmlDocument
    _entries: list[HistoryEntry] = field(default_factory=list)
    _index: int = 0
    _popstate_handler: Callable[[PopStateEvent], None] | None = None

    def __post_init__(self) -> None:
        if not self._entries:
            self._entries.append(HistoryEntry(None, self.document.title, self.document.url))

    @property
    def length(self) -> int:
        return len(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> HistoryEntry:
        return self._entries[self._index]

    def push_state(self, state: NavigationState, title: str, url: str) -> None:
        # Pushing discards any forward entries.
        del self._entries[self._index + 1 :]
        self._entries.append(HistoryEntry(state, title, url))
        self._index += 1
        self.document.url = url

    def replace_state(self, state: NavigationState, title: str, url: str) -> None:
        self._entries[self._index] = HistoryEntry(state, title, url)
        self.document.url = url

    def set_popstate_handler(self, handler: Callable[[PopStateEvent], None] | None) -> None:
        self._popstate_handler = handler

    def go(self, delta: int) -> bool:
        """Move ``delta`` entries through the stack and fire popstate.

        Returns False, and does nothing, if the target is out of range.
        """
        target = self._index + delta
        if delta == 0 or not 0 <= target < len(self._entries):
            return False
        self._index = target
        entry = self._entries[target]
        self.document.url = entry.url
        if self._popstate_handler is not None:
            self._popstate_handler(PopStateEvent(state=entry.state))
        return True

    def back(self) -> bool:
        return self.go(-1)

    def forward(self) -> bool:
        return self.go(1)
