"""Content directory: loading site metadata and looking up content ids.

The metadata is produced offline by ``belafonte-hash`` and maps every page
URL of the site to the content id of its bytes. It is loaded once when the
client starts and never changes afterwards.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import structlog
from pydantic import ValidationError

from belafonte.errors import ConfigurationError
from belafonte.models.content import ContentRecord, LegacyContentRecord

if TYPE_CHECKING:
    from collections.abc import Iterable

log = structlog.get_logger()

MetadataSource = Mapping[str, str] | list[dict[str, Any]] | str | bytes | Path


def strip_fragment(url: str) -> str:
    """Drop the ``#fragment`` of a URL. Fragments never distinguish content."""
    return url.split("#", 1)[0]


def url_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for an absolute URL.

    Unparseable URLs get an empty (opaque) origin, which matches no site.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return ""
    host = parts.netloc.rpartition("@")[2]
    return f"{parts.scheme}://{host}"


class ContentDirectory:
    """Immutable URL → content id lookup."""

    def __init__(self, records: Iterable[ContentRecord] | None) -> None:
        # An empty directory would silently disable all caching.
        if records is None:
            raise ConfigurationError("You must provide metadata for the site content.")

        by_url: dict[str, str] = {}
        for record in records:
            by_url[strip_fragment(record.url)] = record.content_id

        if not by_url:
            raise ConfigurationError("Site metadata contains no content records.")
        self._by_url = by_url

    def lookup(self, url: str) -> str | None:
        """Return the content id for ``url``, or ``None`` if it is unknown."""
        return self._by_url.get(strip_fragment(url))

    @property
    def urls(self) -> list[str]:
        return list(self._by_url)

    @property
    def origins(self) -> frozenset[str]:
        return frozenset(url_origin(url) for url in self._by_url)

    def records(self) -> list[ContentRecord]:
        return [ContentRecord(url=url, content_id=cid) for url, cid in self._by_url.items()]

    def __contains__(self, url: object) -> bool:
        return isinstance(url, str) and strip_fragment(url) in self._by_url

    def __len__(self) -> int:
        return len(self._by_url)


def parse_metadata(raw: Any) -> list[ContentRecord]:
    """Validate decoded metadata into content records.

    Accepts the ``{url: content_id}`` object written by ``belafonte-hash`` and
    the older ``[{"url": ..., "hash": ..., "date": ...}]`` list format.
    """
    try:
        if isinstance(raw, Mapping):
            return [ContentRecord(url=url, content_id=cid) for url, cid in raw.items()]
        if isinstance(raw, list):
            return [
                ContentRecord(url=entry.url, content_id=entry.hash)
                for entry in (LegacyContentRecord(**item) for item in raw)
            ]
    except (ValidationError, TypeError) as exc:
        raise ConfigurationError(f"Invalid site metadata: {exc}") from exc

    raise ConfigurationError(
        f"Site metadata must be a JSON object or list, got {type(raw).__name__}"
    )


def load_directory(source: MetadataSource | None) -> ContentDirectory:
    """Build a ContentDirectory from a mapping, JSON text, or a JSON file path.

    Raises ``ConfigurationError`` on missing, empty, unreadable or malformed
    metadata.
    """
    if source is None:
        raise ConfigurationError("You must provide metadata for the site content.")

    raw: Any = source
    if isinstance(source, Path):
        try:
            raw = source.read_bytes()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read site metadata {source}: {exc}") from exc

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Error parsing site metadata: {exc}") from exc

    directory = ContentDirectory(parse_metadata(raw))
    log.info("directory_loaded", records=len(directory), origins=sorted(directory.origins))
    return directory
