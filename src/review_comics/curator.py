from __future__ import annotations

import re
from collections.abc import Iterable

from review_comics.models import Review

DENYLIST = frozenset(
    {
        "fuck",
        "shit",
        "ass",
        "bitch",
        "bastard",
        "piss",
        "slut",
        "whore",
    }
)

DENYLIST_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(word) for word in sorted(DENYLIST)) + r")\b",
    re.IGNORECASE,
)

LOW_RATING_MAX = 3
MIN_WORKING_SET = 5
MAX_WORKING_SET = 10


def is_inappropriate(text: str) -> bool:
    """Return ``True`` when ``text`` contains a denylisted word as a whole token."""
    if not text or not text.strip():
        return False
    return DENYLIST_RE.search(text) is not None


def filter_inappropriate(texts: Iterable[str]) -> list[str]:
    return [text for text in texts if not is_inappropriate(text)]


def prioritize(reviews: Iterable[Review]) -> list[Review]:
    """Order reviews negative-first, ascending by rating within each group.

    Ratings 1-3 come before ratings 4-5. ``sorted`` is stable, so reviews with
    equal ratings keep their original relative order.
    """
    items = list(reviews)
    low = sorted((r for r in items if r.rating <= LOW_RATING_MAX), key=lambda r: r.rating)
    high = sorted((r for r in items if r.rating > LOW_RATING_MAX), key=lambda r: r.rating)
    return low + high


def clamp_working_set_size(limit: int) -> int:
    return max(MIN_WORKING_SET, min(MAX_WORKING_SET, limit))


def curate(reviews: Iterable[Review], limit: int = MIN_WORKING_SET) -> list[Review]:
    """Drop blank and inappropriate reviews, prioritize, and keep a bounded prefix."""
    usable = [r for r in reviews if r.text.strip() and not is_inappropriate(r.text)]
    return prioritize(usable)[: clamp_working_set_size(limit)]
