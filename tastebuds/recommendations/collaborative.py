from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timedelta

from .cache import ResultCache, collaborative_key
from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig, SimilarityMethod
from .data_store import FollowRepository, RestaurantDirectory, UserDirectory, VisitRepository
from .models import RecommendationScore, SimilarityEntry
from .ratings import build_rating_vector, group_rating_vectors
from .richness import RichnessEvaluator
from .similarity import compute_similarity
from .similarity_store import SimilarityCacheRepository

logger = logging.getLogger(__name__)

ALGORITHM_TYPE = "collaborative"


class CollaborativeEngine:
    """
    Recommend users whose restaurant history resembles the target's.

    Candidates are users who visited at least one of the target's
    restaurants. Pairwise similarities are read from the similarity cache
    while fresh and recomputed otherwise.
    """

    def __init__(
        self,
        visits: VisitRepository,
        follows: FollowRepository,
        users: UserDirectory,
        similarity_cache: SimilarityCacheRepository,
        result_cache: ResultCache,
        restaurants: RestaurantDirectory | None = None,
        config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.visits = visits
        self.follows = follows
        self.users = users
        self.similarity_cache = similarity_cache
        self.result_cache = result_cache
        self.restaurants = restaurants or RestaurantDirectory()
        self.config = config
        self.clock = clock
        self.richness = RichnessEvaluator(visits, follows, clock)

    @property
    def method(self) -> SimilarityMethod:
        return self.config.collaborative.similarity_method

    # ── pairwise similarity ──────────────────────────────────────────────

    def _compute_entry(self, user_a: int, user_b: int) -> SimilarityEntry:
        v1 = build_rating_vector(self.visits.find_by_user_id(user_a))
        v2 = build_rating_vector(self.visits.find_by_user_id(user_b))
        return SimilarityEntry(
            user1_id=user_a,
            user2_id=user_b,
            algorithm_type=self.method.value,
            similarity_score=compute_similarity(v1, v2, self.method),
            common_restaurant_count=len(set(v1) & set(v2)),
            last_calculated=self.clock(),
        )

    def user_similarity(self, user_a: int, user_b: int) -> float:
        """Similarity between two users, served from the cache while fresh."""
        entry = self.similarity_cache.find_by_user_pair_and_algorithm(user_a, user_b, self.method.value)
        cutoff = self.clock() - timedelta(days=self.config.performance.similarity_cache_retention_days)
        if entry is not None and entry.last_calculated >= cutoff:
            return entry.similarity_score
        entry = self.similarity_cache.upsert(self._compute_entry(user_a, user_b))
        return entry.similarity_score

    def compute_similarity_entries(self, user_id: int) -> list[SimilarityEntry]:
        """Fresh entries between ``user_id`` and everyone sharing a restaurant with them."""
        target_vector = build_rating_vector(self.visits.find_by_user_id(user_id))
        if not target_vector:
            return []
        nearby = self.visits.find_by_restaurant_ids(target_vector)
        candidates = sorted({v.user_id for v in nearby} - {user_id})
        return [self._compute_entry(user_id, candidate) for candidate in candidates]

    # ── recommendations ──────────────────────────────────────────────────

    def recommend(self, user_id: int, limit: int) -> list[RecommendationScore]:
        key = collaborative_key(user_id, limit, self.config.cache)
        ttl = self.config.cache.collaborative_ttl_minutes * 60
        result, hit = self.result_cache.get_or_compute(key, ttl, lambda: self._generate(user_id, limit))
        if hit:
            logger.info("Collaborative cache hit for user %s", user_id)
        return result

    def _generate(self, user_id: int, limit: int) -> list[RecommendationScore]:
        cfg = self.config.collaborative
        logger.info("Generating collaborative recommendations for user %s (limit=%s)", user_id, limit)

        target_visits = self.visits.find_by_user_id(user_id)
        if len(target_visits) < cfg.min_user_visits:
            logger.warning("User %s has no visit history, skipping collaborative filtering", user_id)
            return []
        target_vector = build_rating_vector(target_visits)

        excluded = {user_id, *self.follows.get_following_ids(user_id)}
        nearby = group_rating_vectors(self.visits.find_by_restaurant_ids(target_vector))

        scored: list[tuple[RecommendationScore, int]] = []
        for candidate_id in sorted(nearby):
            if candidate_id in excluded:
                continue
            shared = [r for r in nearby[candidate_id] if r in target_vector]
            if len(shared) < cfg.min_common_restaurants:
                continue
            similarity = self.user_similarity(user_id, candidate_id)
            if similarity < cfg.similarity_threshold:
                continue

            overlap = len(shared) / len(target_vector)
            edge = 1.0 if self.follows.is_following(candidate_id, user_id) else 0.0
            score = (
                cfg.similarity_weight * max(similarity, 0.0)
                + cfg.restaurant_weight * overlap
                + cfg.social_weight * edge
            )
            profile = self.users.get_user(candidate_id)
            scored.append((
                RecommendationScore(
                    user_id=candidate_id,
                    user_name=self.users.display_name(candidate_id),
                    user_avatar=profile.avatar_url if profile else None,
                    score=score,
                    algorithm_type=ALGORITHM_TYPE,
                    similarity=similarity,
                    common_restaurant_count=len(shared),
                    activity_score=self.richness.activity_score(candidate_id),
                    reason=self._reason(candidate_id, shared, target_vector),
                ),
                len(shared),
            ))

        if not scored:
            logger.warning("No similar users found for user %s", user_id)
            return []

        scored.sort(key=lambda item: (-item[0].score, -item[1], item[0].user_id))
        cap = min(limit, cfg.max_recommendations_per_user)
        result = [rec for rec, _ in scored[:cap]]
        logger.info("Generated %d collaborative recommendations for user %s", len(result), user_id)
        return result

    def _reason(self, candidate_id: int, shared: list[int], target_vector: dict[int, float]) -> str:
        name = self.users.display_name(candidate_id)
        favourites = sorted(shared, key=lambda r: (-target_vector[r], r))[:3]
        cuisines = Counter(c for c in (self.restaurants.cuisine(r) for r in shared) if c)
        taste = f"{cuisines.most_common(1)[0][0]} restaurants" if cuisines else "similar restaurants"
        places = ", ".join(self.restaurants.name(r) for r in favourites)
        return f"You and {name} both like {taste}, such as {places}, so your tastes may be alike"
