"""Comic generation pipeline: cache check, curation, analysis, rendering, persistence, ranking."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from review_comics.curator import curate
from review_comics.errors import (
    InvalidInputError,
    ServiceError,
    StorageError,
    TransientServiceError,
    VenueNotFoundError,
)
from review_comics.interfaces import ArtifactStore, ImageGenerator, Overlay, StrangenessAnalyzer, VenueSource
from review_comics.leaderboard import LeaderboardStore
from review_comics.models import AnalysisResult, Comic, GenerationResult, LeaderboardEntry, Venue
from review_comics.retry import RetryingCaller
from review_comics.store import ComicCache

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = timedelta(hours=24)
MINIMUM_REVIEWS_REQUIRED = 5
MAXIMUM_REVIEWS_FOR_ANALYSIS = 5
DEFAULT_REGION = "US"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_comic_id() -> str:
    return uuid.uuid4().hex


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class ComicPipeline:
    """Generate or fetch the cached comic for one venue.

    Each call to :meth:`generate` runs the steps strictly in order. The cache
    and leaderboard are written only after the image has been rendered and
    stored, so a failure or cancellation in any earlier step leaves the
    previous state untouched. Failures are returned as tagged
    :class:`GenerationResult` values rather than raised.
    """

    def __init__(
        self,
        *,
        venues: VenueSource,
        analyzer: StrangenessAnalyzer,
        image_generator: ImageGenerator,
        artifacts: ArtifactStore,
        cache: ComicCache,
        leaderboard: LeaderboardStore,
        overlay: Overlay | None = None,
        retrying_caller: RetryingCaller | None = None,
        cache_ttl: timedelta = DEFAULT_CACHE_TTL,
        min_reviews: int = MINIMUM_REVIEWS_REQUIRED,
        max_reviews: int = MAXIMUM_REVIEWS_FOR_ANALYSIS,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_comic_id,
        dedupe_inflight: bool = False,
    ):
        if cache_ttl <= timedelta(0):
            raise ValueError("cache_ttl must be positive")
        self.venues = venues
        self.analyzer = analyzer
        self.image_generator = image_generator
        self.artifacts = artifacts
        self.cache = cache
        self.leaderboard = leaderboard
        self.overlay = overlay
        self.caller = retrying_caller or RetryingCaller()
        self.cache_ttl = cache_ttl
        self.min_reviews = min_reviews
        self.max_reviews = max_reviews
        self.clock = clock
        self.id_factory = id_factory
        self.dedupe_inflight = dedupe_inflight
        self._inflight: dict[str, asyncio.Task[GenerationResult]] = {}
        self._waiters: dict[asyncio.Task[GenerationResult], int] = {}

    async def get_cached(self, venue_id: str) -> Comic | None:
        """Return the live cached comic for ``venue_id`` without generating one."""
        return await asyncio.to_thread(self.cache.get_live, venue_id, self.clock())

    async def generate(self, venue_id: str, force_regenerate: bool = False) -> GenerationResult:
        if not venue_id or not venue_id.strip():
            return GenerationResult.failure(InvalidInputError.kind, "venue_id is required")

        if self.dedupe_inflight and not force_regenerate:
            return await self._join_inflight(venue_id)
        return await self._run(venue_id, force_regenerate)

    async def _join_inflight(self, venue_id: str) -> GenerationResult:
        task = self._inflight.get(venue_id)
        if task is None:
            task = asyncio.ensure_future(self._run(venue_id, False))
            self._inflight[venue_id] = task

            def _forget(done: asyncio.Task[GenerationResult]) -> None:
                if self._inflight.get(venue_id) is done:
                    del self._inflight[venue_id]

            task.add_done_callback(_forget)
        else:
            logger.info("Joining in-flight generation for venue %s", venue_id)

        # Waiters are shielded from each other; the run is cancelled only when its last waiter is.
        self._waiters[task] = self._waiters.get(task, 0) + 1
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if self._waiters[task] == 1 and not task.done():
                logger.info("Cancelling in-flight generation for venue %s, no callers remain", venue_id)
                task.cancel()
            raise
        finally:
            self._waiters[task] -= 1
            if not self._waiters[task]:
                del self._waiters[task]

    async def _run(self, venue_id: str, force_regenerate: bool) -> GenerationResult:
        logger.info("Generating comic for venue %s, force_regenerate=%s", venue_id, force_regenerate)
        try:
            if not force_regenerate:
                cached = await asyncio.to_thread(self.cache.get, venue_id)
                if cached is not None and not cached.is_expired(self.clock()):
                    logger.info("Returning cached comic %s for venue %s", cached.comic_id, venue_id)
                    return GenerationResult.success(cached, cached=True)

            comic = await self._generate_fresh(venue_id)
        except ServiceError as exc:
            logger.warning("Comic generation for venue %s failed (%s): %s", venue_id, exc.kind.value, exc)
            return GenerationResult.failure(exc.kind, str(exc))

        logger.info("Comic generation complete for venue %s: comic %s", venue_id, comic.comic_id)
        return GenerationResult.success(comic, cached=False)

    async def _generate_fresh(self, venue_id: str) -> Comic:
        venue = await self.venues.get_venue(venue_id)
        if venue is None:
            raise VenueNotFoundError(f"Venue not found: {venue_id}")

        if len(venue.reviews) < self.min_reviews:
            raise InvalidInputError(
                f"Venue must have at least {self.min_reviews} reviews to generate a comic. "
                f"Found {len(venue.reviews)}."
            )

        working_set = curate(venue.reviews, limit=self.max_reviews)
        if len(working_set) < self.min_reviews:
            raise InvalidInputError(
                f"Venue must have at least {self.min_reviews} appropriate reviews to generate a comic. "
                f"Found {len(working_set)}."
            )
        ratings = Counter(review.rating for review in working_set)
        logger.info(
            "Analyzing %d reviews for venue %s (ratings: %s)",
            len(working_set),
            venue_id,
            ", ".join(f"{stars}*={ratings[stars]}" for stars in sorted(ratings)),
        )

        texts = [review.text for review in working_set]
        analysis = await self.caller.call(lambda: self._analyze(texts), description="Strangeness analysis")
        score = clamp(analysis.strangeness_score, 0, 100)
        panel_count = clamp(analysis.panel_count, 1, 4)
        narrative = analysis.narrative.strip()
        logger.info("Strangeness score %d, %d panels, narrative length %d", score, panel_count, len(narrative))

        image = await self.caller.call(
            lambda: self.image_generator.generate(narrative, panel_count),
            description="Image generation",
        )
        if self.overlay is not None:
            image = await asyncio.to_thread(self.overlay.apply, image, narrative, panel_count)

        comic_id = self.id_factory()
        image_url = await self._persist(comic_id, image)

        now = self.clock()
        comic = Comic(
            comic_id=comic_id,
            venue_id=venue.venue_id,
            venue_name=venue.name,
            narrative=narrative,
            strangeness_score=score,
            panel_count=panel_count,
            image_url=image_url,
            created_at=now,
            expires_at=now + self.cache_ttl,
        )

        # Once the cache write starts, the cache and leaderboard writes finish even if the caller is cancelled.
        await asyncio.shield(self._commit(venue, comic))
        return comic

    async def _commit(self, venue: Venue, comic: Comic) -> None:
        try:
            await asyncio.to_thread(self.cache.upsert, comic)
        except StorageError:
            await self._discard_artifact(comic.comic_id)
            raise
        await self._update_leaderboard(venue, comic)

    async def _analyze(self, texts: list[str]) -> AnalysisResult:
        result = await self.analyzer.analyze(texts)
        if not result.narrative.strip():
            raise TransientServiceError("Analyzer returned an empty narrative")
        return result

    async def _persist(self, comic_id: str, image: bytes) -> str:
        try:
            return await self.artifacts.put(comic_id, image)
        except OSError as exc:
            raise StorageError(f"Failed to store comic image {comic_id}: {exc}") from exc

    async def _discard_artifact(self, comic_id: str) -> None:
        try:
            await self.artifacts.delete(comic_id)
        except (StorageError, OSError) as exc:
            logger.warning("Failed to remove orphaned comic image %s: %s", comic_id, exc)

    async def _update_leaderboard(self, venue: Venue, comic: Comic) -> None:
        entry = LeaderboardEntry(
            venue_id=venue.venue_id,
            venue_name=venue.name,
            address=venue.address,
            region=venue.region or DEFAULT_REGION,
            strangeness_score=comic.strangeness_score,
            image_url=comic.image_url,
            last_updated=comic.created_at,
        )
        try:
            await asyncio.to_thread(self.leaderboard.upsert, entry)
        except (StorageError, ValueError) as exc:
            # The comic is already committed; ranking failures do not fail the run.
            logger.warning("Failed to update leaderboard for venue %s: %s", venue.venue_id, exc)
