from __future__ import annotations

import pytest

from tastebuds.recommendations.models import Visit, VisitType
from tastebuds.recommendations.ratings import (
    build_rating_vector,
    composite_rating,
    group_rating_vectors,
    raw_rating_vector,
)


def _visit(restaurant_id, visit_type=VisitType.REVIEW, rating=None, visit_count=None, user_id=1):
    return Visit(
        user_id=user_id,
        restaurant_id=restaurant_id,
        visit_type=visit_type,
        rating=rating,
        visit_count=visit_count,
    )


class TestCompositeRating:
    def test_type_weights(self):
        assert composite_rating(_visit(1, VisitType.REVIEW, 5.0)) == pytest.approx(5.0 * 1.0 * 1.04)
        assert composite_rating(_visit(1, VisitType.RECOMMENDATION, 5.0)) == pytest.approx(5.0 * 0.9 * 1.04)
        assert composite_rating(_visit(1, VisitType.FAVORITE, 4.0)) == pytest.approx(4.0 * 0.8 * 1.04)
        assert composite_rating(_visit(1, VisitType.CHECK_IN, 5.0)) == pytest.approx(5.0 * 0.6 * 1.04)

    def test_unrecognised_type_gets_half_weight(self):
        visit = _visit(1, VisitType("BOOKMARK"), 4.0)
        assert visit.visit_type is VisitType.UNKNOWN
        assert composite_rating(visit) == pytest.approx(4.0 * 0.5 * 1.04)

    def test_unrated_visit_defaults_to_three(self):
        assert composite_rating(_visit(1, VisitType.REVIEW)) == pytest.approx(3.0 * 1.04)

    def test_frequency_bonus_saturates_at_five_visits(self):
        five = composite_rating(_visit(1, VisitType.REVIEW, 4.0, visit_count=5))
        fifty = composite_rating(_visit(1, VisitType.REVIEW, 4.0, visit_count=50))
        assert five == pytest.approx(4.0 * 1.2)
        assert fifty == pytest.approx(five)

    def test_zero_rating_is_kept(self):
        assert composite_rating(_visit(1, VisitType.REVIEW, 0.0)) == 0.0


class TestRatingVector:
    def test_empty_visits_give_empty_vector(self):
        assert build_rating_vector([]) == {}

    def test_repeated_restaurant_rows_are_summed(self):
        vector = build_rating_vector([
            _visit(7, VisitType.REVIEW, 4.0, visit_count=1),
            _visit(7, VisitType.CHECK_IN, 4.0, visit_count=1),
        ])
        assert vector == {7: pytest.approx(4.0 * 1.04 + 4.0 * 0.6 * 1.04)}

    def test_group_by_user(self):
        vectors = group_rating_vectors([
            _visit(1, rating=5.0, user_id=10),
            _visit(2, rating=3.0, user_id=10),
            _visit(1, rating=4.0, user_id=11),
        ])
        assert set(vectors) == {10, 11}
        assert set(vectors[10]) == {1, 2}
        assert set(vectors[11]) == {1}

    def test_raw_vector_ignores_type_weight(self):
        vector = raw_rating_vector([
            _visit(1, VisitType.CHECK_IN, 4.0),
            _visit(1, VisitType.FAVORITE),
        ])
        assert vector == {1: 7.0}
