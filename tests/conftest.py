from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from review_comics.leaderboard import LeaderboardStore
from review_comics.models import AnalysisResult, Comic, LeaderboardEntry, Review, Venue
from review_comics.pipeline import ComicPipeline
from review_comics.retry import RetryingCaller
from review_comics.store import ComicCache, Database

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeVenueSource:
    def __init__(self, venues: list[Venue] | None = None) -> None:
        self.venues = {venue.venue_id: venue for venue in venues or []}
        self.calls: list[str] = []

    async def get_venue(self, venue_id: str) -> Venue | None:
        self.calls.append(venue_id)
        return self.venues.get(venue_id)


class FakeAnalyzer:
    def __init__(self, result: AnalysisResult) -> None:
        self.result = result
        self.failures: list[Exception] = []
        self.calls: list[list[str]] = []

    async def analyze(self, texts: list[str]) -> AnalysisResult:
        self.calls.append(list(texts))
        if self.failures:
            raise self.failures.pop(0)
        return self.result


class FakeImageGenerator:
    def __init__(self, image: bytes = b"raw-image") -> None:
        self.image = image
        self.failures: list[Exception] = []
        self.calls: list[tuple[str, int]] = []

    async def generate(self, narrative: str, panel_count: int) -> bytes:
        self.calls.append((narrative, panel_count))
        if self.failures:
            raise self.failures.pop(0)
        return self.image


class MemoryArtifactStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.put_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.deleted: list[str] = []

    async def put(self, artifact_id: str, data: bytes) -> str:
        if self.put_error is not None:
            raise self.put_error
        self.objects[artifact_id] = data
        return f"https://cdn.example.test/comics/{artifact_id}.png"

    async def delete(self, artifact_id: str) -> bool:
        if self.delete_error is not None:
            raise self.delete_error
        self.deleted.append(artifact_id)
        return self.objects.pop(artifact_id, None) is not None


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def make_reviews(ratings: list[int]) -> list[Review]:
    return [
        Review(author=f"guest{idx}", text=f"Review {idx}: the waiter juggled soup bowls ({rating} stars).", rating=rating)
        for idx, rating in enumerate(ratings)
    ]


def make_venue(venue_id: str = "venue-1", ratings: list[int] | None = None, region: str = "US-WA-Seattle") -> Venue:
    return Venue(
        venue_id=venue_id,
        name="The Odd Spoon",
        address="1 Pike St, Seattle, WA",
        region=region,
        reviews=make_reviews(ratings if ratings is not None else [1, 2, 3, 4, 5]),
    )


def make_comic(
    venue_id: str = "venue-1",
    comic_id: str = "comic-1",
    created_at: datetime = T0,
    ttl: timedelta = timedelta(hours=24),
) -> Comic:
    return Comic(
        comic_id=comic_id,
        venue_id=venue_id,
        venue_name="The Odd Spoon",
        narrative="A waiter juggles soup.",
        strangeness_score=64,
        panel_count=3,
        image_url=f"https://cdn.example.test/comics/{comic_id}.png",
        created_at=created_at,
        expires_at=created_at + ttl,
    )


def make_entry(venue_id: str, score: float, region: str = "R") -> LeaderboardEntry:
    return LeaderboardEntry(
        venue_id=venue_id,
        venue_name=f"Venue {venue_id}",
        address="somewhere",
        region=region,
        strangeness_score=score,
        image_url=f"https://cdn.example.test/comics/{venue_id}.png",
        last_updated=T0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db(tmp_path) -> Database:
    database = Database(tmp_path / "review_comics.db")
    database.init_db()
    return database


@pytest.fixture
def cache(db) -> ComicCache:
    return ComicCache(db)


@pytest.fixture
def leaderboard(db) -> LeaderboardStore:
    return LeaderboardStore(db)


@pytest.fixture
def venue_source() -> FakeVenueSource:
    return FakeVenueSource(
        [
            make_venue("venue-1"),
            make_venue("venue-four", ratings=[1, 2, 3, 4]),
            make_venue("venue-five", ratings=[5, 5, 5, 5, 5]),
        ]
    )


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer(
        AnalysisResult(strangeness_score=72, panel_count=3, narrative="A waiter juggles soup. Guests applaud.")
    )


@pytest.fixture
def image_generator() -> FakeImageGenerator:
    return FakeImageGenerator()


@pytest.fixture
def artifacts() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def pipeline(venue_source, analyzer, image_generator, artifacts, cache, leaderboard, clock, recording_sleep):
    counter = iter(range(1, 1000))
    return ComicPipeline(
        venues=venue_source,
        analyzer=analyzer,
        image_generator=image_generator,
        artifacts=artifacts,
        cache=cache,
        leaderboard=leaderboard,
        retrying_caller=RetryingCaller(sleep=recording_sleep),
        clock=clock,
        id_factory=lambda: f"comic{next(counter)}",
    )
