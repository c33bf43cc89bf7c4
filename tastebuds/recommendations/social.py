from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from .cache import ResultCache, social_key
from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from .data_store import FollowRepository, UserDirectory, VisitRepository
from .models import RecommendationScore
from .ratings import build_rating_vector
from .richness import RichnessEvaluator
from .similarity import cosine

logger = logging.getLogger(__name__)

ALGORITHM_TYPE = "social"


class SocialEngine:
    """
    Recommend users who sit close to the target on the follow graph.

    Distance 1 covers users who follow the target but are not followed
    back. Distance 2 covers users followed by the target's followees.
    """

    def __init__(
        self,
        visits: VisitRepository,
        follows: FollowRepository,
        users: UserDirectory,
        result_cache: ResultCache,
        config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.visits = visits
        self.follows = follows
        self.users = users
        self.result_cache = result_cache
        self.config = config
        self.richness = RichnessEvaluator(visits, follows, clock)

    def distance_weight(self, distance: int) -> float:
        cfg = self.config.social
        return cfg.first_degree_weight if distance == 1 else cfg.second_degree_weight

    def mutual_connections(self, user_id: int, candidate_id: int) -> list[int]:
        """Followees of ``user_id`` that follow the candidate, plus users both follow."""
        via = [f for f in self.follows.get_following_ids(user_id) if self.follows.is_following(f, candidate_id)]
        both = self.follows.get_mutual_following_ids(user_id, candidate_id)
        return list(dict.fromkeys(via + both))

    def social_score(self, distance: int, mutual_count: int) -> float:
        cfg = self.config.social
        distance_term = self.distance_weight(distance) / cfg.first_degree_weight
        counted = min(mutual_count, cfg.max_mutual_follow_bonus)
        mutual_term = min(cfg.mutual_follow_bonus * counted, 1.0)
        return cfg.social_distance_weight * distance_term + cfg.similarity_weight * mutual_term

    def recommend(self, user_id: int, limit: int) -> list[RecommendationScore]:
        key = social_key(user_id, limit, self.config.cache)
        ttl = self.config.cache.social_ttl_minutes * 60
        result, hit = self.result_cache.get_or_compute(key, ttl, lambda: self._generate(user_id, limit))
        if hit:
            logger.info("Social cache hit for user %s", user_id)
        return result

    def _generate(self, user_id: int, limit: int) -> list[RecommendationScore]:
        cfg = self.config.social
        logger.info("Generating social recommendations for user %s (limit=%s)", user_id, limit)

        following = self.follows.get_following_ids(user_id)
        excluded = {user_id, *following}

        first_degree = sorted(f for f in self.follows.get_follower_ids(user_id) if f not in excluded)
        second_degree: dict[int, list[int]] = {}
        for followee in following:
            for candidate in self.follows.get_following_ids(followee):
                if candidate in excluded or candidate in first_degree:
                    continue
                second_degree.setdefault(candidate, []).append(followee)

        if not first_degree and not second_degree:
            logger.warning("User %s has no reachable social candidates", user_id)
            return []

        target_vector = build_rating_vector(self.visits.find_by_user_id(user_id))
        first_pool = [self._score(user_id, c, 1, target_vector) for c in first_degree]
        second_pool = [self._score(user_id, c, 2, target_vector) for c in sorted(second_degree)]
        first_pool.sort(key=lambda r: r.score, reverse=True)
        second_pool.sort(key=lambda r: r.score, reverse=True)

        merged = first_pool[:cfg.max_first_degree_recommendations] + second_pool[:cfg.max_second_degree_recommendations]
        merged.sort(key=lambda r: r.score, reverse=True)
        result = merged[:limit]
        logger.info("Generated %d social recommendations for user %s", len(result), user_id)
        return result

    def _score(self, user_id: int, candidate_id: int, distance: int, target_vector: dict[int, float]) -> RecommendationScore:
        mutual = self.mutual_connections(user_id, candidate_id)
        similarity = cosine(target_vector, build_rating_vector(self.visits.find_by_user_id(candidate_id)))
        profile = self.users.get_user(candidate_id)
        return RecommendationScore(
            user_id=candidate_id,
            user_name=self.users.display_name(candidate_id),
            user_avatar=profile.avatar_url if profile else None,
            score=self.social_score(distance, len(mutual)),
            algorithm_type=ALGORITHM_TYPE,
            similarity=similarity,
            social_distance=distance,
            mutual_follow_count=len(mutual),
            activity_score=self.richness.activity_score(candidate_id),
            reason=self._reason(candidate_id, distance, mutual, similarity),
        )

    def _reason(self, candidate_id: int, distance: int, mutual: list[int], similarity: float) -> str:
        name = self.users.display_name(candidate_id)
        if distance == 1:
            reason = f"{name} follows you"
        elif mutual:
            names = ", ".join(self.users.display_name(m) for m in mutual[:2])
            if len(mutual) > 2:
                reason = f"You and {name} are both connected to {names} and {len(mutual) - 2} others"
            else:
                reason = f"You and {name} are both connected to {names}"
        else:
            reason = f"People you follow follow {name}"
        if similarity >= self.config.collaborative.similarity_threshold:
            reason += ", and your restaurant tastes look similar"
        return reason
