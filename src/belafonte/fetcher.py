"""Origin fetcher used to obtain page bytes for seeding.

Requests ask for any cached copy (long ``cache-control`` max-age) so seeding a
page the visitor already loaded does not cost the origin another request. Only
URLs on one of the site's own origins may be fetched, re-checked on every
redirect hop. The Fetcher receives an httpx.AsyncClient via constructor
injection; open_client owns the client lifecycle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urljoin

import httpx
import structlog

from belafonte.directory import url_origin
from belafonte.errors import ErrorCode, FetchFailure

if TYPE_CHECKING:
    from belafonte.config import FetcherSettings
    from belafonte.directory import ContentDirectory

log = structlog.get_logger()


def build_http_client(settings: FetcherSettings | None = None) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    timeout = settings.timeout_seconds if settings is not None else 30.0
    return httpx.AsyncClient(
        follow_redirects=False,
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": "belafonte/1.0"},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


def build_allowlist(directory: ContentDirectory) -> frozenset[str]:
    """Return the origins the fetcher may contact: those of the site's pages."""
    return directory.origins


def is_url_allowed(url: str, allowlist: frozenset[str]) -> bool:
    return url_origin(url) in allowlist


class Fetcher:
    """Cache-aware HTTP fetcher with same-site redirect handling."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        allowlist: frozenset[str],
        settings: FetcherSettings | None = None,
    ) -> None:
        self._client = client
        self._allowlist = allowlist
        self._max_redirects = settings.max_redirects if settings is not None else 3
        cache_control = (
            settings.cache_control if settings is not None else "public, max-age=315360000"
        )
        self._headers = {"cache-control": cache_control}

    async def fetch(self, url: str) -> bytes:
        """Fetch a page and return its raw bytes.

        Raises FetchFailure on disallowed URLs, network errors, too many
        redirects, non-2xx responses and empty bodies.
        """
        current_url = url

        try:
            for hop in range(self._max_redirects + 1):
                if not is_url_allowed(current_url, self._allowlist):
                    log.warning("fetch_blocked", url=current_url, reason="foreign_origin")
                    raise FetchFailure(
                        f"URL not on a site origin: {current_url}",
                        code=ErrorCode.URL_NOT_ALLOWED,
                        recoverable=False,
                    )

                response = await self._client.get(current_url, headers=self._headers)

                if response.is_redirect and "location" in response.headers:
                    if hop == self._max_redirects:
                        raise FetchFailure(
                            f"Too many redirects fetching {url}", recoverable=False
                        )
                    current_url = urljoin(current_url, response.headers["location"])
                    continue

                if not response.is_success:
                    raise FetchFailure(
                        f"HTTP {response.status_code} fetching {url}",
                        recoverable=response.status_code >= 500,
                    )

                if not response.content:
                    raise FetchFailure(f"Empty response fetching {url}", recoverable=False)

                log.debug(
                    "fetch_complete",
                    url=url,
                    status_code=response.status_code,
                    content_length=len(response.content),
                )
                return response.content

        except FetchFailure:
            raise
        except httpx.HTTPError as exc:
            raise FetchFailure(f"Network error fetching {url}: {exc}") from exc
        except (httpx.InvalidURL, ValueError) as exc:
            raise FetchFailure(f"Invalid URL fetching {url}: {exc}", recoverable=False) from exc

        # Unreachable but satisfies the type checker
        raise FetchFailure("Redirect loop", recoverable=False)
