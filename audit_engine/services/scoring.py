"""
Scoring Tables

Versioned rating -> points mapping. Every stored response carries the
version that produced its points, so changing the table never rewrites
history: add a new version and point CURRENT_SCORE_VERSION at it.
"""

import math
from typing import Dict, Iterable, Optional, Tuple

from audit_engine.models.audit import Rating

RATING_POINTS: Dict[str, Dict[Rating, int]] = {
    'v1': {
        Rating.CONFORMITY_BEST_PRACTICE: 3,
        Rating.CONFORMITY: 2,
        Rating.MINOR_NC: 1,
        Rating.MAJOR_NC: 0,
    },
}

CURRENT_SCORE_VERSION = 'v1'


def round_half_up(value: float) -> int:
    """Round to nearest integer; .5 rounds up."""
    return int(math.floor(value + 0.5))


def points_for(rating: Rating, version: str = CURRENT_SCORE_VERSION) -> int:
    return RATING_POINTS[version][Rating(rating)]


def max_points(version: str) -> int:
    return max(RATING_POINTS[version].values())


def score_percent(scored: Iterable[Tuple[int, str]]) -> Optional[int]:
    """
    Aggregate score as a percentage.

    ``scored`` yields (points, score_version) per response. Each response
    is weighed against the maximum of its own version. Returns None when
    there is nothing to score; unanswered indicators never count.
    """
    earned = 0
    possible = 0
    for points, version in scored:
        earned += points
        possible += max_points(version)

    if possible == 0:
        return None
    return round_half_up(earned / possible * 100)
