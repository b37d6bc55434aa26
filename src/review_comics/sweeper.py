"""Background loop that purges expired comics and their stored images."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from review_comics.errors import StorageError
from review_comics.interfaces import ArtifactStore
from review_comics.pipeline import utcnow
from review_comics.store import ComicCache

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = timedelta(minutes=30)
MAX_INTERVAL = timedelta(minutes=720)
DEFAULT_BATCH_SIZE = 25
MIN_BATCH_SIZE = 5
MAX_BATCH_SIZE = 200
DEFAULT_INITIAL_DELAY = timedelta(minutes=1)


def normalize_interval(interval: timedelta) -> timedelta:
    if interval <= timedelta(0):
        return DEFAULT_INTERVAL
    return min(interval, MAX_INTERVAL)


def normalize_batch_size(batch_size: int) -> int:
    return max(MIN_BATCH_SIZE, min(MAX_BATCH_SIZE, batch_size))


class ExpirationSweeper:
    """Periodically delete expired cache records and their backing images.

    Started and stopped explicitly with :meth:`start` and :meth:`stop`. The
    sweeper holds no locks; a sweep racing a regeneration for the same venue
    leaves the newer record alone because rows are deleted only while they
    still reference the expired comic.
    """

    def __init__(
        self,
        cache: ComicCache,
        artifacts: ArtifactStore,
        interval: timedelta = DEFAULT_INTERVAL,
        batch_size: int = DEFAULT_BATCH_SIZE,
        initial_delay: timedelta = DEFAULT_INITIAL_DELAY,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.cache = cache
        self.artifacts = artifacts
        self.interval = normalize_interval(interval)
        self.batch_size = normalize_batch_size(batch_size)
        self.initial_delay = max(initial_delay, timedelta(0))
        self.clock = clock
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None

    async def sweep_once(self) -> int:
        """Drain expired comics batch by batch and return how many were purged."""
        started = time.monotonic()
        total_deleted = 0

        while True:
            expired = await asyncio.to_thread(self.cache.list_expired, self.clock(), self.batch_size)
            if not expired:
                break

            deleted_in_batch = 0
            for comic in expired:
                try:
                    removed = await asyncio.to_thread(self.cache.delete, comic.venue_id, comic.comic_id)
                except (StorageError, OSError) as exc:
                    logger.warning(
                        "Failed to delete expired comic %s for venue %s: %s",
                        comic.comic_id,
                        comic.venue_id,
                        exc,
                    )
                    continue
                if removed:
                    deleted_in_batch += 1

                # The image is orphaned either way, including when a regeneration replaced the row.
                try:
                    await self.artifacts.delete(comic.comic_id)
                except (StorageError, OSError) as exc:
                    logger.warning("Failed to delete image for expired comic %s: %s", comic.comic_id, exc)

            total_deleted += deleted_in_batch
            if len(expired) < self.batch_size:
                break
            if deleted_in_batch == 0:
                logger.warning("Expired comic cleanup made no progress on a full batch; retrying next sweep")
                break

        if total_deleted:
            logger.info(
                "Expired comic cleanup removed %d records in %.0fms",
                total_deleted,
                (time.monotonic() - started) * 1000,
            )
        return total_deleted

    async def run(self) -> None:
        """Sweep forever on a fixed interval until cancelled."""
        await self._sleep(self.initial_delay.total_seconds())
        while True:
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("Unexpected failure during expired comic cleanup")
            await self._sleep(self.interval.total_seconds())

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="expiration-sweeper")
            logger.info(
                "Expiration sweeper started: interval=%s batch_size=%d",
                self.interval,
                self.batch_size,
            )
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Expiration sweeper stopped")
