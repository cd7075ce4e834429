"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (BELAFONTE__CLIENT__MARKER=+)
  3. belafonte.yaml         (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional; all fields have sensible defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from belafonte.magnet import DEFAULT_ANNOUNCE_LIST

DEFAULT_MARKER = "\u2605"  # ★


def _find_config_file() -> str | None:
    """Return the path of the first belafonte.yaml found, or None."""
    candidates = [
        Path("belafonte.yaml"),
        Path(platformdirs.user_config_dir("belafonte")) / "belafonte.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ClientSettings(BaseModel):
    # Prefixed to page titles loaded from the swarm cache. Empty disables it.
    marker: str = DEFAULT_MARKER
    announce_list: list[list[str]] = Field(
        default_factory=lambda: [list(tier) for tier in DEFAULT_ANNOUNCE_LIST]
    )
    # Seed the current page from a byte-exact origin copy instead of the
    # rendered document.
    seed_from_network: bool = False


class FetcherSettings(BaseModel):
    timeout_seconds: float = 30.0
    max_redirects: int = 3
    cache_control: str = "public, max-age=315360000"


class SwarmSettings(BaseModel):
    # "module:attribute" of a zero-argument SwarmEngine factory.
    engine: str = "belafonte.loopback:LoopbackSwarm"


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: BELAFONTE__FETCHER__MAX_REDIRECTS=5
        env_prefix="BELAFONTE__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    client: ClientSettings = ClientSettings()
    fetcher: FetcherSettings = FetcherSettings()
    swarm: SwarmSettings = SwarmSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
