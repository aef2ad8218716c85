"""Typer CLI for inspecting and managing the audio cache."""

import asyncio
import json
import logging
from pathlib import Path

import typer

from .config import generate_config, load_config
from .container import read_artifact_header
from .errors import InvalidContainer, IoFailure
from .index import CacheEntry
from .paths import get_config_path
from .service import TrackCacheService

app = typer.Typer(help="Inspect and manage the on-disk audio cache")

DEBUG_OPTION = typer.Option(False, "--debug", help="Show verbose log output")


def _setup_logging(debug: bool) -> None:
    if debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )


async def _list_entries() -> list[CacheEntry]:
    async with TrackCacheService.start(load_config()) as cache:
        return await cache.index.entries()


async def _describe(url: str) -> dict | None:
    async with TrackCacheService.start(load_config()) as cache:
        track = await cache.lookup_and_open(url)
        if track is None:
            return None
        with track:
            size = track.path.stat().st_size
            meta = track.metadata
            return {
                "path": str(track.path),
                "title": meta.title,
                "artist": meta.artist,
                "date": meta.date,
                "duration_ms": meta.duration_ms,
                "sample_rate": meta.sample_rate,
                "channels": meta.channels,
                "thumbnail": meta.thumbnail,
                "payload_bytes": size - track.payload_offset,
            }


async def _forget(url: str, delete_file: bool) -> str | None:
    async with TrackCacheService.start(load_config()) as cache:
        relpath = await cache.index.lookup(url)
        if relpath is None:
            return None
        await cache.index.remove(url)
        if delete_file:
            (cache.cache_root / relpath).unlink(missing_ok=True)
        return relpath


@app.command("ls")
def list_cache(debug: bool = DEBUG_OPTION) -> None:
    """List cached sources and their artifact paths."""
    _setup_logging(debug)
    try:
        entries = asyncio.run(_list_entries())
    except IoFailure as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    if not entries:
        typer.echo("Cache is empty")
        return
    for entry in entries:
        typer.echo(f"{entry.source_key}\t{entry.artifact_path}")


@app.command()
def lookup(
    url: str = typer.Argument(..., help="Source URL to look up"),
    debug: bool = DEBUG_OPTION,
) -> None:
    """Show the cached metadata for a source URL."""
    _setup_logging(debug)
    info = asyncio.run(_describe(url))
    if info is None:
        typer.echo(f"Not cached: {url}")
        raise typer.Exit(1)
    for key, value in info.items():
        if value is not None:
            typer.echo(f"{key}: {value}")


@app.command()
def inspect(
    file: Path = typer.Argument(..., help="Artifact file to decode"),
    debug: bool = DEBUG_OPTION,
) -> None:
    """Decode and print the header of an artifact file."""
    _setup_logging(debug)
    try:
        header, offset = read_artifact_header(file)
        size = file.stat().st_size
    except InvalidContainer as e:
        typer.echo(f"Error: Invalid artifact: {e}", err=True)
        raise typer.Exit(1) from None
    except OSError as e:
        if debug:
            typer.echo(f"Debug - File system error: {e!r}", err=True)
        else:
            typer.echo(f"Error: Failed to read {file}", err=True)
        raise typer.Exit(1) from None

    typer.echo(json.dumps(header.to_dict(), indent=2, ensure_ascii=False))
    typer.echo(f"payload: {size - offset} bytes at offset {offset}")


@app.command()
def forget(
    url: str = typer.Argument(..., help="Source URL to remove from the cache"),
    keep_file: bool = typer.Option(
        False, "--keep-file", help="Only drop the index entry, keep the artifact"
    ),
    debug: bool = DEBUG_OPTION,
) -> None:
    """Remove a source from the cache (e.g. a corrupt artifact)."""
    _setup_logging(debug)
    try:
        relpath = asyncio.run(_forget(url, delete_file=not keep_file))
    except (IoFailure, OSError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    if relpath is None:
        typer.echo(f"Not cached: {url}")
        raise typer.Exit(1)
    typer.echo(f"Removed {url} ({relpath})")


@app.command("init-config")
def init_config(
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
    debug: bool = DEBUG_OPTION,
) -> None:
    """Write the default configuration file."""
    _setup_logging(debug)
    path = get_config_path()
    if path.exists() and not force:
        typer.echo(f"Config already exists at {path} (use --force to overwrite)")
        raise typer.Exit(1)
    typer.echo(f"Wrote {generate_config(path)}")
