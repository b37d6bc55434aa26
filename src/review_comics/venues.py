"""Venue lookup backed by a JSON export of the discovery service."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from review_comics.errors import PermanentServiceError
from review_comics.models import Venue

logger = logging.getLogger(__name__)


def load_venues(path: Path) -> dict[str, Venue]:
    """Load venues from ``path``.

    The file holds either a list of venue objects or an object keyed by venue
    id. Keyed entries may omit ``venue_id``; the key is used.

    Raises:
        PermanentServiceError: If the file cannot be read or does not match the schema.
    """
    try:
        payload: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise PermanentServiceError(f"Unable to read venues from {path}: {exc}") from exc

    if isinstance(payload, dict):
        bad_keys = [key for key, value in payload.items() if not isinstance(value, dict)]
        if bad_keys:
            raise PermanentServiceError(f"Venue entries must be objects: {', '.join(bad_keys)}")
        items = [{"venue_id": key, **value} for key, value in payload.items()]
    elif isinstance(payload, list):
        items = payload
    else:
        raise PermanentServiceError(f"Venue file must contain a list or an object: {path}")

    try:
        venues = [Venue.model_validate(item) for item in items]
    except ValidationError as exc:
        raise PermanentServiceError(f"Venue file failed schema validation: {exc}") from exc
    return {venue.venue_id: venue for venue in venues}


class JsonVenueSource:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._venues: dict[str, Venue] | None = None

    async def get_venue(self, venue_id: str) -> Venue | None:
        if self._venues is None:
            self._venues = await asyncio.to_thread(load_venues, self.path)
            logger.info("Loaded %d venues from %s", len(self._venues), self.path)
        return self._venues.get(venue_id)
