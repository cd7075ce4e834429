from __future__ import annotations

from belafonte.models.content import (
    CachedResource,
    ContentRecord,
    LegacyContentRecord,
    NavigationState,
)

__all__ = [
    "ContentRecord",
    "LegacyContentRecord",
    "CachedResource",
    "NavigationState",
]
