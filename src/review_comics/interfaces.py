"""Single-method collaborator interfaces injected into the pipeline and background jobs."""

from __future__ import annotations

from typing import Protocol

from review_comics.models import AnalysisResult, Venue


class VenueSource(Protocol):
    async def get_venue(self, venue_id: str) -> Venue | None: ...


class StrangenessAnalyzer(Protocol):
    async def analyze(self, texts: list[str]) -> AnalysisResult: ...


class ImageGenerator(Protocol):
    async def generate(self, narrative: str, panel_count: int) -> bytes: ...


class Overlay(Protocol):
    def apply(self, image_bytes: bytes, narrative: str, panel_count: int) -> bytes: ...


class ArtifactStore(Protocol):
    async def put(self, artifact_id: str, data: bytes) -> str: ...

    async def delete(self, artifact_id: str) -> bool: ...
