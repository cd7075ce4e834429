"""Client wiring.

Responsibilities (and nothing more):
- Load the content directory and build ClientState
- Attach a NavigationController to a document and its history
- Tear everything down in reverse order on exit
"""

from __future__ import annotations

import importlib
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from belafonte import __version__
from belafonte.cache import ResourceCache
from belafonte.config import Settings
from belafonte.directory import load_directory
from belafonte.errors import ConfigurationError
from belafonte.fetcher import Fetcher, build_allowlist, build_http_client
from belafonte.navigation import NavigationController
from belafonte.seeder import Seeder
from belafonte.sessions import SessionRegistry
from belafonte.state import ClientState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx

    from belafonte.directory import MetadataSource
    from belafonte.protocols import DocumentProtocol, HistoryProtocol, SwarmEngine

log = structlog.get_logger()


def load_engine(spec: str) -> SwarmEngine:
    """Instantiate the engine factory named by ``"module:attribute"``."""
    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"Engine must be given as 'module:attribute', got {spec!r}")
    try:
        factory = getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as exc:
        raise ConfigurationError(f"Cannot load swarm engine {spec!r}: {exc}") from exc
    return factory()


@dataclass
class Client:
    state: ClientState
    navigation: NavigationController


@asynccontextmanager
async def open_client(
    metadata: MetadataSource | None,
    document: DocumentProtocol,
    history: HistoryProtocol,
    *,
    engine: SwarmEngine | None = None,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncGenerator[Client, None]:
    """Start the navigation cache for ``document`` for the duration of the block.

    Raises ConfigurationError before anything is started if the metadata is
    missing or malformed. An ``http_client`` passed in is left open on exit.
    """
    settings = settings or Settings()
    directory = load_directory(metadata)

    if engine is None:
        engine = load_engine(settings.swarm.engine)

    owns_http_client = http_client is None
    if http_client is None:
        http_client = build_http_client(settings.fetcher)
    fetcher = Fetcher(http_client, build_allowlist(directory), settings.fetcher)

    cache = ResourceCache()
    sessions = SessionRegistry(engine, cache, settings.client.announce_list)
    seeder = Seeder(directory, sessions, cache, fetcher)

    state = ClientState(
        settings=settings,
        directory=directory,
        engine=engine,
        cache=cache,
        sessions=sessions,
        seeder=seeder,
        fetcher=fetcher,
        http_client=http_client,
    )

    log.info("client_starting", version=__version__, url=document.url, pages=len(directory))
    try:
        navigation = NavigationController(
            document,
            history,
            directory,
            sessions,
            cache,
            seeder,
            marker=settings.client.marker,
            seed_from_network=settings.client.seed_from_network,
        )
        yield Client(state=state, navigation=navigation)
    finally:
        await sessions.close()
        close_engine = getattr(engine, "close", None)
        if close_engine is not None:
            await close_engine()
        if owns_http_client:
            await http_client.aclose()
        log.info("client_stopped", sessions=len(sessions))
