"""Region-partitioned strangeness leaderboard on an ordered key table.

Rows live under partition key ``LEADERBOARD_<region>`` with row key
``<inverted score>_<venue id>``. The inverted score is
``9999999999 - floor(score * 10**7)`` padded to 10 digits, so an ascending
row-key scan of a partition yields entries by descending score, and the
venue id suffix keeps keys unique when scores tie.
"""

from __future__ import annotations

import logging
import math
import sqlite3

from review_comics.models import LeaderboardEntry
from review_comics.store import Database, from_db_time, to_db_time

logger = logging.getLogger(__name__)

PARTITION_PREFIX = "LEADERBOARD"
INVERSION_CONSTANT = 9_999_999_999
SCORE_SCALE = 10**7
KEY_WIDTH = 10
MIN_SCORE = 0
MAX_SCORE = 100
DEFAULT_ADMISSION_THRESHOLD = 20
MAX_LIMIT = 50


def partition_key(region: str) -> str:
    return f"{PARTITION_PREFIX}_{region}"


def invert_score(score: float) -> str:
    if not MIN_SCORE <= score <= MAX_SCORE:
        raise ValueError(f"Score must be between {MIN_SCORE} and {MAX_SCORE}")
    inverted = INVERSION_CONSTANT - math.floor(score * SCORE_SCALE)
    return f"{inverted:0{KEY_WIDTH}d}"


def row_key(score: float, venue_id: str) -> str:
    return f"{invert_score(score)}_{venue_id}"


def _row_to_entry(row: sqlite3.Row, rank: int = 0) -> LeaderboardEntry:
    return LeaderboardEntry(
        venue_id=row["venue_id"],
        venue_name=row["venue_name"],
        address=row["address"],
        region=row["region"],
        strangeness_score=row["strangeness_score"],
        image_url=row["image_url"],
        last_updated=from_db_time(row["last_updated"]),
        rank=rank,
    )


def _require(value: str, name: str) -> None:
    if not value or not value.strip():
        raise ValueError(f"{name} is required")


class LeaderboardStore:
    def __init__(self, db: Database, min_score: float = DEFAULT_ADMISSION_THRESHOLD):
        self.db = db
        self.min_score = min_score

    def get_top_entries(self, region: str, limit: int = 10) -> list[LeaderboardEntry]:
        """Return up to ``limit`` entries for ``region`` by descending score, ranked from 1."""
        _require(region, "region")
        if not 1 <= limit <= MAX_LIMIT:
            raise ValueError(f"Limit must be between 1 and {MAX_LIMIT}")

        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM leaderboard WHERE partition_key = ? ORDER BY row_key LIMIT ?",
                (partition_key(region), limit),
            ).fetchall()

        entries = [_row_to_entry(row, rank=index + 1) for index, row in enumerate(rows)]
        logger.info("Retrieved %d leaderboard entries for region %s", len(entries), region)
        return entries

    def get_entry(self, venue_id: str, region: str) -> LeaderboardEntry | None:
        _require(venue_id, "venue_id")
        _require(region, "region")
        with self.db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM leaderboard WHERE partition_key = ? AND venue_id = ? ORDER BY row_key LIMIT 1",
                (partition_key(region), venue_id),
            ).fetchone()
            return _row_to_entry(row) if row else None

    def upsert(self, entry: LeaderboardEntry) -> bool:
        """Insert or move ``entry``; return ``False`` if its score is below the admission threshold.

        The score is part of the row key, so a score change removes the old
        row before inserting the new one. Both statements run in a single
        SQLite transaction, so readers never see the venue missing.
        """
        _require(entry.venue_id, "venue_id")
        _require(entry.region, "region")
        _require(entry.venue_name, "venue_name")
        _require(entry.image_url, "image_url")
        if not MIN_SCORE <= entry.strangeness_score <= MAX_SCORE:
            raise ValueError(f"Strangeness score must be between {MIN_SCORE} and {MAX_SCORE}")

        if entry.strangeness_score < self.min_score:
            logger.info(
                "Skipping leaderboard entry for %s - score %s below threshold %s",
                entry.venue_id,
                entry.strangeness_score,
                self.min_score,
            )
            return False

        pkey = partition_key(entry.region)
        rkey = row_key(entry.strangeness_score, entry.venue_id)

        with self.db.connect() as conn:
            stale = conn.execute(
                "DELETE FROM leaderboard WHERE partition_key = ? AND venue_id = ? AND row_key != ?",
                (pkey, entry.venue_id, rkey),
            ).rowcount
            conn.execute(
                """
                INSERT OR REPLACE INTO leaderboard(
                    partition_key, row_key, venue_id, venue_name, address, region,
                    strangeness_score, image_url, last_updated
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    pkey,
                    rkey,
                    entry.venue_id,
                    entry.venue_name,
                    entry.address,
                    entry.region,
                    entry.strangeness_score,
                    entry.image_url,
                    to_db_time(entry.last_updated),
                ),
            )

        action = "Moved" if stale else "Upserted"
        logger.info(
            "%s leaderboard entry for %s in %s with score %s",
            action,
            entry.venue_id,
            entry.region,
            entry.strangeness_score,
        )
        return True

    def delete(self, venue_id: str, region: str) -> bool:
        _require(venue_id, "venue_id")
        _require(region, "region")
        with self.db.connect() as conn:
            removed = conn.execute(
                "DELETE FROM leaderboard WHERE partition_key = ? AND venue_id = ?",
                (partition_key(region), venue_id),
            ).rowcount
        if not removed:
            logger.warning("Leaderboard entry %s not found in %s", venue_id, region)
        return removed > 0

    def delete_by_venue(self, venue_id: str) -> int:
        """Remove the venue's entries from every region partition."""
        _require(venue_id, "venue_id")
        with self.db.connect() as conn:
            keys = conn.execute(
                "SELECT partition_key, row_key FROM leaderboard WHERE venue_id = ?",
                (venue_id,),
            ).fetchall()
            for key in keys:
                conn.execute(
                    "DELETE FROM leaderboard WHERE partition_key = ? AND row_key = ?",
                    (key["partition_key"], key["row_key"]),
                )

        logger.info("Deleted %d leaderboard entry/entries for venue %s", len(keys), venue_id)
        return len(keys)
