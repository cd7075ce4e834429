"""``belafonte-hash``: generate the site metadata consumed by the client.

Publishes each file through the configured swarm engine, which computes its
content id, and prints a JSON object mapping every file's URL under
``origin`` to that id. With ``--seed`` the engine keeps publishing the files
until the process is interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urljoin

import structlog

from belafonte import __version__
from belafonte.client import load_engine
from belafonte.config import Settings
from belafonte.errors import BelafonteError, ConfigurationError

if TYPE_CHECKING:
    from belafonte.protocols import SwarmEngine

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        # Logs go to stderr, stdout is reserved for the metadata JSON
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def load_trackers(path: Path) -> list[list[str]]:
    """Read a tiered announce list (a JSON list of lists of URLs) from ``path``."""
    data = path.read_text(encoding="utf-8")
    try:
        trackers = json.loads(data)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Error parsing trackers: {exc}") from exc

    if not isinstance(trackers, list) or not all(
        isinstance(tier, list) and all(isinstance(url, str) for url in tier) for tier in trackers
    ):
        raise ConfigurationError("Error parsing trackers: expected a list of lists of URLs")
    return trackers


def file_url(origin: str, path: Path) -> str:
    """Name a file after its URL: its path relative to the cwd, under ``origin``."""
    relative = Path(os.path.relpath(path)).as_posix()
    return urljoin(origin, relative)


async def hash_files(
    origin: str,
    files: list[Path],
    engine: SwarmEngine,
    announce_list: list[list[str]],
) -> dict[str, str]:
    """Publish every file and return ``{url: content_id}`` in argument order."""

    async def publish(path: Path) -> tuple[str, str]:
        url = file_url(origin, path)
        data = path.read_bytes()
        handle = await engine.publish(data, name=url, announce_list=announce_list)
        log.debug("file_hashed", path=str(path), url=url, content_id=handle.content_id)
        return url, handle.content_id

    results = await asyncio.gather(*(publish(path) for path in files))
    return dict(results)


def render(metadata: dict[str, str], *, pretty: bool) -> str:
    if pretty:
        return json.dumps(metadata, indent=2, ensure_ascii=False)
    return json.dumps(metadata, separators=(",", ":"), ensure_ascii=False)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="belafonte-hash",
        description="Compute content ids for site files and print them as JSON.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-o", "--output", type=Path, help="Save the hash list to a JSON file")
    parser.add_argument("-p", "--pretty", action="store_true", help="Format the JSON output")
    parser.add_argument("-s", "--seed", action="store_true", help="Seed the files")
    parser.add_argument(
        "-t", "--trackers", type=Path, help="Read the tracker list from a JSON file"
    )
    parser.add_argument("origin", help="Site origin the file paths are resolved against")
    parser.add_argument("files", nargs="*", type=Path, help="Files to hash")
    return parser


async def run(args: argparse.Namespace, settings: Settings) -> int:
    engine = load_engine(settings.swarm.engine)
    try:
        announce_list = (
            load_trackers(args.trackers) if args.trackers else settings.client.announce_list
        )
        metadata = await hash_files(args.origin, args.files, engine, announce_list)
        output = render(metadata, pretty=args.pretty)

        if args.output is None:
            print(output)
        else:
            args.output.write_text(output, encoding="utf-8")
            log.info("metadata_written", path=str(args.output), files=len(metadata))

        if args.seed:
            log.info("seeding", files=len(metadata))
            await asyncio.Event().wait()
    except (BelafonteError, OSError) as exc:
        message = exc.message if isinstance(exc, BelafonteError) else str(exc)
        print(message, file=sys.stderr)
        return 1
    finally:
        close_engine = getattr(engine, "close", None)
        if close_engine is not None:
            await close_engine()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    _setup_logging(settings)

    try:
        return asyncio.run(run(args, settings))
    except ConfigurationError as exc:
        # Raised while loading the engine, before run() can report it.
        print(exc.message, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        log.info("seeding_stopped")
        return 0


if __name__ == "__main__":
    sys.exit(main())
