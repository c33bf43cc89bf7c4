from __future__ import annotations

import itertools

import pytest

from tastebuds.recommendations.config import SimilarityMethod
from tastebuds.recommendations.models import Visit, VisitType
from tastebuds.recommendations.ratings import build_rating_vector
from tastebuds.recommendations.similarity import (
    adjusted_cosine,
    common_keys,
    compute_similarity,
    cosine,
    pearson,
)

VECTORS = {
    "a": {1: 5.0, 2: 3.2, 3: 4.1},
    "b": {1: 4.0, 2: 5.0, 4: 2.0},
    "c": {2: 1.0, 3: 4.5, 4: 3.3, 5: 2.2},
    "d": {1: 2.5, 3: 2.5},
}


def test_common_keys_sorted():
    assert common_keys({3: 1.0, 1: 1.0, 2: 1.0}, {2: 1.0, 3: 1.0}) == [2, 3]


@pytest.mark.parametrize("method", list(SimilarityMethod))
def test_similarity_is_symmetric(method):
    for left, right in itertools.combinations(VECTORS.values(), 2):
        assert compute_similarity(left, right, method) == compute_similarity(right, left, method)


@pytest.mark.parametrize("method", list(SimilarityMethod))
def test_similarity_bounded(method):
    for left, right in itertools.product(VECTORS.values(), repeat=2):
        assert -1.0 <= compute_similarity(left, right, method) <= 1.0


def test_cosine_self_similarity_is_one():
    assert cosine(VECTORS["a"], VECTORS["a"]) == pytest.approx(1.0)


def test_no_common_restaurants_is_zero():
    left, right = {1: 4.0, 2: 5.0}, {3: 4.0, 4: 5.0}
    assert cosine(left, right) == 0.0
    assert pearson(left, right) == 0.0
    assert adjusted_cosine(left, right) == 0.0


def test_empty_vectors_are_zero():
    for method in SimilarityMethod:
        assert compute_similarity({}, VECTORS["a"], method) == 0.0


def test_cosine_zero_norm_is_zero():
    assert cosine({1: 0.0, 2: 0.0}, {1: 3.0, 2: 4.0}) == 0.0


def test_pearson_needs_variance():
    # Both users rate the two shared restaurants identically
    assert pearson({1: 4.0, 2: 4.0}, {1: 1.0, 2: 5.0}) == 0.0
    assert pearson({1: 4.0}, {1: 5.0}) == 0.0


def test_pearson_detects_opposite_tastes():
    assert pearson({1: 1.0, 2: 3.0, 3: 5.0}, {1: 5.0, 2: 3.0, 3: 1.0}) == pytest.approx(-1.0)


def test_adjusted_cosine_centres_on_full_vector_mean():
    # Mean of the first vector includes restaurant 3, which the second never visited
    left = {1: 5.0, 2: 1.0, 3: 3.0}
    right = {1: 4.0, 2: 2.0}
    assert adjusted_cosine(left, right) == pytest.approx(1.0)


def test_unknown_method_string_rejected():
    with pytest.raises(ValueError):
        compute_similarity(VECTORS["a"], VECTORS["b"], "jaccard")


def test_method_accepts_plain_string():
    assert compute_similarity(VECTORS["a"], VECTORS["b"], "pearson") == pearson(VECTORS["a"], VECTORS["b"])


def test_two_user_example_uses_type_weighted_vectors():
    u1 = build_rating_vector([
        Visit(user_id=1, restaurant_id=1, visit_type=VisitType.REVIEW, rating=5.0),
        Visit(user_id=1, restaurant_id=2, visit_type=VisitType.FAVORITE, rating=4.0),
    ])
    u2 = build_rating_vector([
        Visit(user_id=2, restaurant_id=1, visit_type=VisitType.REVIEW, rating=4.0),
        Visit(user_id=2, restaurant_id=2, visit_type=VisitType.REVIEW, rating=5.0),
    ])
    # (5, 3.2) against (4, 5), each scaled by the same single-visit bonus
    expected = (5 * 4 + 3.2 * 5) / ((5**2 + 3.2**2) ** 0.5 * (4**2 + 5**2) ** 0.5)
    assert cosine(u1, u2) == pytest.approx(expected)
    assert cosine(u1, u2) > 0.9
