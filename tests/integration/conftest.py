"""Integration test fixtures.

Site metadata here carries real info hashes, so pages published through a
LoopbackSwarm land under the content ids the directory expects.
"""

from __future__ import annotations

import pytest

from belafonte.config import ClientSettings, Settings
from belafonte.loopback import SwarmHub
from belafonte.torrent import info_hash


@pytest.fixture()
def metadata(pages: dict[str, str]) -> dict[str, str]:
    return {url: info_hash(url, page.encode("utf-8")) for url, page in pages.items()}


@pytest.fixture()
def hub() -> SwarmHub:
    """One swarm shared by every peer in a test."""
    return SwarmHub()


@pytest.fixture()
def settings() -> Settings:
    return Settings(client=ClientSettings(announce_list=[["wss://tracker.example"]]))
