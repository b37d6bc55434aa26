"""Takedown: remove every trace of a venue's comic and its leaderboard ranking."""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel

from review_comics.errors import StorageError
from review_comics.interfaces import ArtifactStore
from review_comics.leaderboard import LeaderboardStore
from review_comics.store import ComicCache

logger = logging.getLogger(__name__)


class TakedownReport(BaseModel):
    venue_id: str
    region: str
    comic_removed: bool = False
    artifact_removed: bool = False
    leaderboard_entries_removed: int = 0


class TakedownService:
    def __init__(self, cache: ComicCache, artifacts: ArtifactStore, leaderboard: LeaderboardStore):
        self.cache = cache
        self.artifacts = artifacts
        self.leaderboard = leaderboard

    async def takedown(self, venue_id: str, region: str) -> TakedownReport:
        """Delete the cache record, the image object, and all leaderboard entries for a venue.

        Image deletion is best-effort and only logged on failure. Cache and
        leaderboard failures propagate to the caller.
        """
        if not venue_id or not venue_id.strip():
            raise ValueError("venue_id is required")

        logger.info("Processing takedown for venue %s in region %s", venue_id, region)
        report = TakedownReport(venue_id=venue_id, region=region)

        comic = await asyncio.to_thread(self.cache.get, venue_id)
        if comic is not None:
            report.comic_removed = await asyncio.to_thread(self.cache.delete, venue_id)
            try:
                report.artifact_removed = await self.artifacts.delete(comic.comic_id)
            except (StorageError, OSError) as exc:
                logger.error("Failed to delete image for comic %s: %s", comic.comic_id, exc)
        else:
            logger.warning("No cached comic found for venue %s", venue_id)

        report.leaderboard_entries_removed = await asyncio.to_thread(self.leaderboard.delete_by_venue, venue_id)

        logger.info(
            "Takedown completed for venue %s: comic_removed=%s artifact_removed=%s leaderboard_entries=%d",
            venue_id,
            report.comic_removed,
            report.artifact_removed,
            report.leaderboard_entries_removed,
        )
        return report
