from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from review_comics.errors import StorageError
from review_comics.models import Comic

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS comics (
    venue_id TEXT PRIMARY KEY,
    comic_id TEXT NOT NULL,
    venue_name TEXT NOT NULL,
    narrative TEXT NOT NULL,
    strangeness_score INTEGER NOT NULL,
    panel_count INTEGER NOT NULL,
    image_url TEXT NOT NULL,
    created_at TEXT NOT NULL,
    expires_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_comics_expires_at ON comics(expires_at);

CREATE TABLE IF NOT EXISTS leaderboard (
    partition_key TEXT NOT NULL,
    row_key TEXT NOT NULL,
    venue_id TEXT NOT NULL,
    venue_name TEXT NOT NULL,
    address TEXT NOT NULL,
    region TEXT NOT NULL,
    strangeness_score REAL NOT NULL,
    image_url TEXT NOT NULL,
    last_updated TEXT NOT NULL,
    PRIMARY KEY (partition_key, row_key)
);

CREATE INDEX IF NOT EXISTS ix_leaderboard_venue_id ON leaderboard(venue_id);
"""

DB_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def to_db_time(value: datetime) -> str:
    """Render a timestamp as fixed-width UTC text so string order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(DB_TIME_FORMAT)


def from_db_time(value: str) -> datetime:
    return datetime.strptime(value, DB_TIME_FORMAT).replace(tzinfo=timezone.utc)


class Database:
    def __init__(self, db_path: Path, timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout = timeout

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside one transaction, mapping SQLite failures to ``StorageError``."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to open database {self.db_path}: {exc}") from exc

        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageError(f"Database operation failed: {exc}") from exc
        finally:
            conn.close()

    def init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)


def _row_to_comic(row: sqlite3.Row) -> Comic:
    return Comic(
        comic_id=row["comic_id"],
        venue_id=row["venue_id"],
        venue_name=row["venue_name"],
        narrative=row["narrative"],
        strangeness_score=row["strangeness_score"],
        panel_count=row["panel_count"],
        image_url=row["image_url"],
        created_at=from_db_time(row["created_at"]),
        expires_at=from_db_time(row["expires_at"]),
    )


class ComicCache:
    """One comic per venue id, replaced wholesale on regeneration."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, venue_id: str) -> Comic | None:
        """Return the stored comic even if it has expired; callers check ``expires_at``."""
        if not venue_id or not venue_id.strip():
            raise ValueError("venue_id is required")
        with self.db.connect() as conn:
            row = conn.execute("SELECT * FROM comics WHERE venue_id = ?", (venue_id,)).fetchone()
            return _row_to_comic(row) if row else None

    def get_live(self, venue_id: str, now: datetime) -> Comic | None:
        comic = self.get(venue_id)
        if comic is None or comic.is_expired(now):
            return None
        return comic

    def upsert(self, comic: Comic) -> None:
        with self.db.connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO comics(
                    venue_id, comic_id, venue_name, narrative, strangeness_score,
                    panel_count, image_url, created_at, expires_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    comic.venue_id,
                    comic.comic_id,
                    comic.venue_name,
                    comic.narrative,
                    comic.strangeness_score,
                    comic.panel_count,
                    comic.image_url,
                    to_db_time(comic.created_at),
                    to_db_time(comic.expires_at),
                ),
            )

    def delete(self, venue_id: str, comic_id: str | None = None) -> bool:
        """Delete the venue's record; with ``comic_id`` only if it still holds that artifact."""
        query = "DELETE FROM comics WHERE venue_id = ?"
        params: tuple = (venue_id,)
        if comic_id is not None:
            query += " AND comic_id = ?"
            params = (*params, comic_id)

        with self.db.connect() as conn:
            return conn.execute(query, params).rowcount > 0

    def list_expired(self, now: datetime, limit: int) -> list[Comic]:
        if limit <= 0:
            raise ValueError("limit must be greater than zero")
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM comics WHERE expires_at < ? ORDER BY expires_at LIMIT ?",
                (to_db_time(now), limit),
            ).fetchall()
            return [_row_to_comic(r) for r in rows]
