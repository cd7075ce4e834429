"""In-memory resource cache keyed by content id.

Entries are inserted at most once and never replaced or expired: a content
id names exactly one body, so the first verified copy is the only copy. The
cache lives as long as the client and is never written to disk.
"""

from __future__ import annotations

import structlog

from belafonte.models.content import CachedResource

log = structlog.get_logger()


class ResourceCache:
    """Dict-backed cache implementing CacheProtocol."""

    def __init__(self) -> None:
        self._resources: dict[str, CachedResource] = {}

    def get(self, content_id: str) -> str | None:
        """Return the cached body, or ``None`` on a miss."""
        resource = self._resources.get(content_id)
        return resource.body if resource is not None else None

    def put(self, content_id: str, body: str) -> bool:
        """Insert ``body`` unless ``content_id`` is already cached.

        Returns True if the entry was inserted. A repeated insert is a silent
        no-op; duplicate completion notifications end up here.
        """
        if content_id in self._resources:
            log.debug("cache_put_ignored", content_id=content_id, reason="already_cached")
            return False
        self._resources[content_id] = CachedResource(content_id=content_id, body=body)
        log.debug("cache_put", content_id=content_id, size=len(body))
        return True

    def __contains__(self, content_id: object) -> bool:
        return content_id in self._resources

    def __len__(self) -> int:
        return len(self._resources)
