"""Typer-based CLI for generating review comics and managing the leaderboard."""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from review_comics.config import (
    Settings,
    build_database,
    build_pipeline,
    build_sweeper,
    build_takedown,
    setup_logging,
)
from review_comics.generator import resolve_gemini_api_key
from review_comics.leaderboard import LeaderboardStore
from review_comics.models import GenerationResult

app = typer.Typer(add_completion=False, help="review-comics: turn strange reviews into comics")


def _load_settings(db_path: Path | None = None, venues_path: Path | None = None) -> Settings:
    settings = Settings()
    overrides = {}
    if db_path is not None:
        overrides["db_path"] = db_path
    if venues_path is not None:
        overrides["venues_path"] = venues_path
    if overrides:
        settings = settings.model_copy(update=overrides)
    setup_logging(settings.log_level)
    return settings


def _echo_step(step: int, total: int, message: str) -> None:
    """Print a normalized progress step line."""
    typer.echo(f"[{step}/{total}] {message}")


def _echo_result(result: GenerationResult) -> None:
    if not result.ok:
        error = result.error
        typer.echo(f"Generation failed: kind={error.kind.value} message={error.message}", err=True)
        raise typer.Exit(code=1)

    comic = result.comic
    source = "cache" if result.cached else "fresh"
    typer.echo(
        f"Comic ready ({source}). id={comic.comic_id} venue={comic.venue_name!r} "
        f"score={comic.strangeness_score} panels={comic.panel_count} "
        f"expires={comic.expires_at.isoformat()} url={comic.image_url}"
    )
    typer.echo(f"    {comic.narrative}")


@app.command("init-db")
def init_db(
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Initialize the SQLite database schema."""
    settings = _load_settings(db_path=db_path)
    build_database(settings)
    typer.echo(f"DB initialized: {settings.db_path}")


@app.command("generate")
def generate(
    venue_id: str = typer.Argument(..., help="Venue id from the discovery service"),
    force: bool = typer.Option(False, "--force", help="Regenerate even if a live comic is cached"),
    venues_path: Path | None = typer.Option(None, "--venues", help="JSON file with venues and reviews"),
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
    local_only: bool = typer.Option(False, help="Skip Gemini and use the offline analyzer and renderer"),
) -> None:
    """Generate (or fetch the cached) comic for one venue."""
    _echo_step(1, 2, "Preparing storage")
    settings = _load_settings(db_path=db_path, venues_path=venues_path)
    db = build_database(settings)
    pipeline = build_pipeline(settings, db, local_only=local_only)

    _echo_step(2, 2, f"Generating comic for {venue_id}")
    result = asyncio.run(pipeline.generate(venue_id, force_regenerate=force))
    _echo_result(result)


@app.command("leaderboard")
def leaderboard(
    region: str = typer.Argument(..., help="Region partition, e.g. US-WA-Seattle"),
    limit: int = typer.Option(10, min=1, max=50, help="Number of entries to show"),
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Show the strangest venues in a region."""
    settings = _load_settings(db_path=db_path)
    store = LeaderboardStore(build_database(settings), min_score=settings.leaderboard_min_score)
    entries = store.get_top_entries(region, limit)
    if not entries:
        typer.echo(f"No leaderboard entries for region {region}")
        return
    for entry in entries:
        typer.echo(f"{entry.rank:>3}. {entry.strangeness_score:>5.1f}  {entry.venue_name}  {entry.image_url}")


@app.command("takedown")
def takedown(
    venue_id: str = typer.Argument(..., help="Venue id to remove"),
    region: str = typer.Argument(..., help="Region the venue is ranked in"),
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Remove a venue's comic, its image, and its leaderboard entries."""
    settings = _load_settings(db_path=db_path)
    service = build_takedown(settings, build_database(settings))
    report = asyncio.run(service.takedown(venue_id, region))
    typer.echo(
        "Takedown complete. "
        f"comic_removed={report.comic_removed} artifact_removed={report.artifact_removed} "
        f"leaderboard_entries_removed={report.leaderboard_entries_removed}"
    )


@app.command("sweep")
def sweep(
    once: bool = typer.Option(False, "--once", help="Run a single sweep and exit"),
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Purge expired comics, once or on the configured interval."""
    settings = _load_settings(db_path=db_path)
    sweeper = build_sweeper(settings, build_database(settings))
    if once:
        purged = asyncio.run(sweeper.sweep_once())
        typer.echo(f"Purged {purged} expired comic(s)")
        return

    typer.echo(f"Sweeping every {sweeper.interval}; press Ctrl+C to stop")
    try:
        asyncio.run(sweeper.run())
    except KeyboardInterrupt:
        typer.echo("Sweeper stopped")


@app.command("doctor")
def doctor(
    db_path: Path | None = typer.Option(None, "--db", help="SQLite database path"),
) -> None:
    """Print local environment diagnostics used by the CLI."""
    settings = _load_settings(db_path=db_path)
    typer.echo(f"DB exists: {settings.db_path.exists()} ({settings.db_path})")
    typer.echo(f"Venues file exists: {settings.venues_path.exists()} ({settings.venues_path})")
    typer.echo(f"Artifact dir: {settings.artifact_dir}")
    typer.echo(f"Cache TTL: {settings.cache_ttl}")
    typer.echo(f"GEMINI_API_KEY set: {bool(resolve_gemini_api_key())}")


if __name__ == "__main__":
    app()
