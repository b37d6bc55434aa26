"""Application settings and collaborator wiring."""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from review_comics.artifacts import FileArtifactStore
from review_comics.curator import clamp_working_set_size
from review_comics.generator import (
    DEFAULT_ANALYSIS_MODEL,
    DEFAULT_IMAGE_MODEL,
    GeminiAnalyzer,
    GeminiImageGenerator,
    LocalAnalyzer,
    PlaceholderImageGenerator,
)
from review_comics.leaderboard import LeaderboardStore
from review_comics.overlay import TextOverlay
from review_comics.pipeline import ComicPipeline
from review_comics.retry import RetryingCaller
from review_comics.store import ComicCache, Database
from review_comics.sweeper import ExpirationSweeper
from review_comics.takedown import TakedownService
from review_comics.venues import JsonVenueSource

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REVIEW_COMICS_", env_file=".env", extra="ignore")

    db_path: Path = Path(".review_comics/review_comics.db")
    artifact_dir: Path = Path(".review_comics/artifacts")
    artifact_base_url: str | None = None
    venues_path: Path = Path("venues.json")

    # Sources disagree between 24 hours and 7 days; one knob, 24 hours by default.
    cache_ttl_hours: float = Field(default=24.0, gt=0)
    min_reviews: int = Field(default=5, ge=1)
    max_reviews_for_analysis: int = 5
    leaderboard_min_score: float = Field(default=20.0, ge=0, le=100)

    retry_max_retries: int = Field(default=3, ge=0)
    retry_backoff_base: float = Field(default=2.0, gt=0)
    call_timeout_seconds: float | None = 120.0

    sweep_interval_minutes: float = 30.0
    sweep_batch_size: int = 25
    sweep_initial_delay_seconds: float = 60.0

    analysis_model: str = DEFAULT_ANALYSIS_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    dedupe_inflight: bool = False
    log_level: str = "INFO"

    @field_validator("max_reviews_for_analysis", mode="after")
    @classmethod
    def clamp_max_reviews(cls, v: int) -> int:
        return clamp_working_set_size(v)

    @field_validator("log_level", mode="after")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return (v or "INFO").strip().upper()

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(hours=self.cache_ttl_hours)


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def build_database(settings: Settings) -> Database:
    db = Database(settings.db_path)
    db.init_db()
    return db


def build_artifact_store(settings: Settings) -> FileArtifactStore:
    return FileArtifactStore(settings.artifact_dir, base_url=settings.artifact_base_url)


def build_pipeline(settings: Settings, db: Database, local_only: bool = False) -> ComicPipeline:
    """Wire a pipeline from settings; ``local_only`` swaps in the offline analyzer and renderer."""
    if local_only:
        analyzer = LocalAnalyzer()
        image_generator = PlaceholderImageGenerator()
    else:
        analyzer = GeminiAnalyzer(model_name=settings.analysis_model)
        image_generator = GeminiImageGenerator(model_name=settings.image_model)

    return ComicPipeline(
        venues=JsonVenueSource(settings.venues_path),
        analyzer=analyzer,
        image_generator=image_generator,
        artifacts=build_artifact_store(settings),
        cache=ComicCache(db),
        leaderboard=LeaderboardStore(db, min_score=settings.leaderboard_min_score),
        overlay=TextOverlay(),
        retrying_caller=RetryingCaller(
            max_retries=settings.retry_max_retries,
            backoff_base=settings.retry_backoff_base,
            attempt_timeout=settings.call_timeout_seconds,
        ),
        cache_ttl=settings.cache_ttl,
        min_reviews=settings.min_reviews,
        max_reviews=settings.max_reviews_for_analysis,
        dedupe_inflight=settings.dedupe_inflight,
    )


def build_sweeper(settings: Settings, db: Database) -> ExpirationSweeper:
    return ExpirationSweeper(
        ComicCache(db),
        build_artifact_store(settings),
        interval=timedelta(minutes=settings.sweep_interval_minutes),
        batch_size=settings.sweep_batch_size,
        initial_delay=timedelta(seconds=settings.sweep_initial_delay_seconds),
    )


def build_takedown(settings: Settings, db: Database) -> TakedownService:
    return TakedownService(
        ComicCache(db),
        build_artifact_store(settings),
        LeaderboardStore(db, min_score=settings.leaderboard_min_score),
    )
