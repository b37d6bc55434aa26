"""Pydantic models shared across curation, generation, and persistence layers."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from review_comics.errors import ErrorKind


class Review(BaseModel):
    """A single source review for a venue."""

    author: str = ""
    text: str
    rating: int = Field(ge=1, le=5)
    published_at: datetime | None = None


class Venue(BaseModel):
    """A venue and its raw reviews as returned by the discovery service."""

    venue_id: str
    name: str
    address: str = ""
    region: str = "US"
    latitude: float | None = None
    longitude: float | None = None
    rating: float | None = None
    review_count: int | None = None
    reviews: list[Review] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    """Normalized strangeness analyzer output."""

    model_config = ConfigDict(populate_by_name=True)

    strangeness_score: int = Field(alias="strangenessScore")
    panel_count: int = Field(default=4, alias="panelCount")
    narrative: str = ""


class Comic(BaseModel):
    """The cached artifact generated for one venue."""

    comic_id: str
    venue_id: str
    venue_name: str
    narrative: str
    strangeness_score: int = Field(ge=0, le=100)
    panel_count: int = Field(ge=1, le=4)
    image_url: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class LeaderboardEntry(BaseModel):
    """A ranked venue within one region partition."""

    venue_id: str
    venue_name: str
    address: str = ""
    region: str
    strangeness_score: float
    image_url: str
    last_updated: datetime
    rank: int = 0


class GenerationError(BaseModel):
    kind: ErrorKind
    message: str


class GenerationResult(BaseModel):
    """Tagged outcome of one pipeline run: a comic or a classified error."""

    comic: Comic | None = None
    cached: bool = False
    error: GenerationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.comic is not None

    @classmethod
    def success(cls, comic: Comic, cached: bool = False) -> GenerationResult:
        return cls(comic=comic, cached=cached)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> GenerationResult:
        return cls(error=GenerationError(kind=kind, message=message))
