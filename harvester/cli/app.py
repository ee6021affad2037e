"""Command line interface for a scheduled harvest run."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from ..services.orchestrator import run_harvest
from ..settings import HarvesterSettings

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Harvest the catalog into an M3U playlist.",
    add_completion=False,
)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


@app.command()
def harvest(
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Playlist file to overwrite (defaults to settings)."
    ),
    headed: bool = typer.Option(
        False, "--headed", help="Run browser automation with a visible window."
    ),
    max_genres: Optional[int] = typer.Option(
        None, min=0, help="Number of genres to process after the trending group."
    ),
    trending_limit: Optional[int] = typer.Option(
        None, min=1, help="Maximum items harvested for the trending group."
    ),
    genre_limit: Optional[int] = typer.Option(
        None, min=1, help="Maximum items harvested per genre."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Run one full harvest and export the playlist.

    Partial failures are logged and never change the exit code.
    """

    configure_logging(verbose)
    settings = HarvesterSettings()

    update: dict[str, object] = {}
    if output is not None:
        update["output_path"] = str(output)
    if headed:
        update["browser"] = settings.browser.model_copy(update={"headless": False})
    if max_genres is not None:
        update["max_genres"] = max_genres
    if trending_limit is not None:
        update["trending_limit"] = trending_limit
    if genre_limit is not None:
        update["genre_limit"] = genre_limit
    if update:
        settings = settings.model_copy(update=update)

    try:
        entries = asyncio.run(run_harvest(settings))
    except Exception as exc:
        logger.exception("[run] harvest could not be started")
        typer.echo(f"Harvest failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    if entries:
        typer.echo(f"Exported {len(entries)} entries to {settings.output_path}")
    else:
        typer.echo("No playable streams found; playlist left unchanged.")
