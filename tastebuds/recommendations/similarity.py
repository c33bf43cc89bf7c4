"""
User-user similarity over composite rating vectors.

Every method compares two ``restaurant_id -> rating`` vectors on the
restaurants both users visited. Keys are walked in sorted order so the
result does not depend on argument order.
"""
from __future__ import annotations

import math

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity

from .config import SimilarityMethod

RatingVector = dict[int, float]


def common_keys(v1: RatingVector, v2: RatingVector) -> list[int]:
    return sorted(set(v1) & set(v2))


def _bounded(value: float) -> float:
    if math.isnan(value):
        return 0.0
    return max(-1.0, min(1.0, value))


def _cosine(a: np.ndarray, b: np.ndarray) -> float:
    if not a.size or not np.any(a) or not np.any(b):
        return 0.0
    return _bounded(float(cosine_similarity(a.reshape(1, -1), b.reshape(1, -1))[0, 0]))


def cosine(v1: RatingVector, v2: RatingVector) -> float:
    keys = common_keys(v1, v2)
    if not keys:
        return 0.0
    a = np.array([v1[k] for k in keys], dtype=float)
    b = np.array([v2[k] for k in keys], dtype=float)
    return _cosine(a, b)


def pearson(v1: RatingVector, v2: RatingVector) -> float:
    keys = common_keys(v1, v2)
    if len(keys) < 2:
        return 0.0
    a = np.array([v1[k] for k in keys], dtype=float)
    b = np.array([v2[k] for k in keys], dtype=float)
    da = a - a.mean()
    db = b - b.mean()
    denominator = math.sqrt(float(np.dot(da, da)) * float(np.dot(db, db)))
    if denominator == 0.0:
        return 0.0
    return _bounded(float(np.dot(da, db)) / denominator)


def adjusted_cosine(v1: RatingVector, v2: RatingVector) -> float:
    """Cosine after centring each vector on that user's own mean rating."""
    keys = common_keys(v1, v2)
    if not keys:
        return 0.0
    mean1 = sum(v1.values()) / len(v1)
    mean2 = sum(v2.values()) / len(v2)
    a = np.array([v1[k] - mean1 for k in keys], dtype=float)
    b = np.array([v2[k] - mean2 for k in keys], dtype=float)
    return _cosine(a, b)


_METHODS = {
    SimilarityMethod.COSINE: cosine,
    SimilarityMethod.PEARSON: pearson,
    SimilarityMethod.ADJUSTED_COSINE: adjusted_cosine,
}


def compute_similarity(
    v1: RatingVector, v2: RatingVector, method: SimilarityMethod = SimilarityMethod.COSINE,
) -> float:
    return _METHODS[SimilarityMethod(method)](v1, v2)
