"""Client state container.

ClientState is created once by ``open_client`` and owns every shared
instance: the directory, the resource cache and the session registry are
process-scoped objects reached through it, never module globals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from belafonte.config import Settings
    from belafonte.directory import ContentDirectory
    from belafonte.protocols import CacheProtocol, FetcherProtocol, SwarmEngine
    from belafonte.seeder import Seeder
    from belafonte.sessions import SessionRegistry


@dataclass
class ClientState:
    """Holds all shared runtime state."""

    settings: Settings
    directory: ContentDirectory
    engine: SwarmEngine
    cache: CacheProtocol
    sessions: SessionRegistry
    seeder: Seeder
    fetcher: FetcherProtocol
    http_client: httpx.AsyncClient | None = None
