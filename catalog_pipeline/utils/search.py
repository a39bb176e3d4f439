"""Keyword generation and ranking helpers for the search index."""

from __future__ import annotations

import math
import re
from datetime import datetime

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

MIN_WORD_LENGTH = 3
MIN_PREFIX_LENGTH = 3
DECAY_DAYS = 30.0


def generate_search_keywords(text: str) -> list[str]:
    """Return the sorted, deduplicated keyword set for ``text``.

    Contains every word of at least three characters, each pair of adjacent
    words, and the prefixes (three characters and up) of words longer than
    three characters. Supports containment lookups, not ranked relevance.
    """
    if not text:
        return []

    words = [
        word
        for word in _WHITESPACE.split(_NON_WORD.sub(" ", text.lower()))
        if len(word) >= MIN_WORD_LENGTH
    ]

    keywords: set[str] = set(words)
    keywords.update(f"{first} {second}" for first, second in zip(words, words[1:]))
    for word in words:
        if len(word) > MIN_PREFIX_LENGTH:
            keywords.update(word[:end] for end in range(MIN_PREFIX_LENGTH, len(word) + 1))

    return sorted(keywords)


def popularity_score(views: int, likes: int, created_at: datetime, now: datetime) -> float:
    """Engagement weighted by exponential age decay.

    Non-decreasing in ``views`` and ``likes``, non-increasing in age. Age is
    counted in whole hours so re-projecting an unchanged product within the
    same hour yields the same value.
    """
    age_hours = max(0, math.floor((now - created_at).total_seconds() / 3600))
    age_factor = math.exp(-(age_hours / 24) / DECAY_DAYS)
    engagement = max(0, views) * 0.1 + max(0, likes) * 2
    return round(engagement * age_factor, 6)
