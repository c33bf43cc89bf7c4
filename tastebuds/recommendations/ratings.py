"""Collapse raw visit rows into per-user composite rating vectors."""
from __future__ import annotations

from collections.abc import Iterable

from .models import Visit, VisitType

DEFAULT_RATING = 3.0
UNKNOWN_TYPE_WEIGHT = 0.5

VISIT_TYPE_WEIGHTS: dict[VisitType, float] = {
    VisitType.REVIEW: 1.0,
    VisitType.RECOMMENDATION: 0.9,
    VisitType.FAVORITE: 0.8,
    VisitType.CHECK_IN: 0.6,
}

# Repeat visits add up to +20% once a user has been five times
_FREQUENCY_SATURATION = 5
_FREQUENCY_BONUS = 0.2


def composite_rating(visit: Visit) -> float:
    base = visit.rating if visit.rating is not None else DEFAULT_RATING
    type_weight = VISIT_TYPE_WEIGHTS.get(visit.visit_type, UNKNOWN_TYPE_WEIGHT)
    count = visit.visit_count if visit.visit_count is not None else 1
    frequency = 1.0 + min(count / _FREQUENCY_SATURATION, 1.0) * _FREQUENCY_BONUS
    return base * type_weight * frequency


def build_rating_vector(visits: Iterable[Visit]) -> dict[int, float]:
    """
    Map ``restaurant_id -> composite rating`` for one user's visits.

    Several rows for the same restaurant are summed, so repeated positive
    interactions compound. An empty input yields an empty vector.
    """
    vector: dict[int, float] = {}
    for visit in visits:
        vector[visit.restaurant_id] = vector.get(visit.restaurant_id, 0.0) + composite_rating(visit)
    return vector


def group_rating_vectors(visits: Iterable[Visit]) -> dict[int, dict[int, float]]:
    """Build rating vectors for every user present in ``visits``."""
    by_user: dict[int, list[Visit]] = {}
    for visit in visits:
        by_user.setdefault(visit.user_id, []).append(visit)
    return {user_id: build_rating_vector(rows) for user_id, rows in by_user.items()}


def raw_rating_vector(visits: Iterable[Visit]) -> dict[int, float]:
    """Unweighted per-restaurant rating sums, unrated visits counting as 3.0."""
    vector: dict[int, float] = {}
    for visit in visits:
        rating = visit.rating if visit.rating is not None else DEFAULT_RATING
        vector[visit.restaurant_id] = vector.get(visit.restaurant_id, 0.0) + rating
    return vector
