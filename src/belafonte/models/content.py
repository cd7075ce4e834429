from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator


class ContentRecord(BaseModel):
    """Single entry of the site metadata: a page URL and its content id."""

    model_config = ConfigDict(frozen=True)

    url: str
    content_id: str

    @field_validator("url", "content_id")
    @classmethod
    def validate_non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be a non-empty string")
        return v


class LegacyContentRecord(BaseModel):
    """Entry of the older list-shaped metadata: ``{url, hash, date}``."""

    url: str
    hash: str
    date: str | int | None = None  # Creation date; not part of the lookup


class CachedResource(BaseModel):
    """Page content resolved for a content id. Immutable once inserted."""

    model_config = ConfigDict(frozen=True)

    content_id: str
    body: str


class NavigationState(BaseModel):
    """State object stored in each browser history entry."""

    model_config = ConfigDict(frozen=True)

    url: str
