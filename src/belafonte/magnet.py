"""Magnet locators for joining a swarm by content identifier."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import parse_qs, quote, urlsplit

from belafonte.errors import ConfigurationError

# Tiered tracker list used when none is configured.
DEFAULT_ANNOUNCE_LIST: tuple[tuple[str, ...], ...] = (
    ("udp://tracker.leechers-paradise.org:6969",),
    ("udp://tracker.coppersurfer.tk:6969",),
    ("udp://tracker.opentrackr.org:1337",),
    ("udp://explodie.org:6969",),
    ("udp://tracker.empire-js.us:1337",),
    ("wss://tracker.btorrent.xyz",),
    ("wss://tracker.openwebtorrent.com",),
    ("wss://tracker.fastcast.nz",),
)

URN_SCHEME = "btih"

# Characters JavaScript's encodeURI leaves untouched, beyond alphanumerics.
_ENCODE_URI_SAFE = ";,/?:@&=+$-_.!~*'()#"


def encode_uri(value: str) -> str:
    """Percent-encode like ``encodeURI``: reserved URL characters are kept."""
    return quote(value, safe=_ENCODE_URI_SAFE)


def tracker_params(announce_list: list[list[str]]) -> str:
    """Flatten a tiered announce list into ``tr=`` query parameters."""
    return "&".join(
        "tr=" + encode_uri(tracker) for tier in announce_list for tracker in tier
    )


def build_magnet_uri(content_id: str, name: str, announce_list: list[list[str]]) -> str:
    """Build the locator used to join the swarm for ``content_id``.

    The swarm is identified by the content id and named after the resource's
    original URL. Peers are discovered through the announce list.
    """
    parts = [f"xt=urn:{URN_SCHEME}:{content_id}", f"dn={encode_uri(name)}"]
    trackers = tracker_params(announce_list)
    if trackers:
        parts.append(trackers)
    return "magnet:?" + "&".join(parts)


@dataclass(frozen=True)
class MagnetLink:
    content_id: str
    name: str | None = None
    trackers: list[str] = field(default_factory=list)


def parse_magnet_uri(uri: str) -> MagnetLink:
    """Parse a locator produced by :func:`build_magnet_uri`.

    Raises ``ConfigurationError`` if the URI is not a magnet link or carries
    no ``urn:btih`` exact topic.
    """
    parsed = urlsplit(uri)
    if parsed.scheme != "magnet":
        raise ConfigurationError(f"Not a magnet URI: {uri!r}")

    params = parse_qs(parsed.query)
    prefix = f"urn:{URN_SCHEME}:"
    topics = [xt for xt in params.get("xt", []) if xt.startswith(prefix)]
    if not topics or not topics[0][len(prefix):]:
        raise ConfigurationError(f"Magnet URI has no {prefix} topic: {uri!r}")

    names = params.get("dn")
    return MagnetLink(
        content_id=topics[0][len(prefix):],
        name=names[0] if names else None,
        trackers=params.get("tr", []),
    )
