from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import datetime

from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from .data_store import FollowRepository, UserDirectory, VisitRepository
from .models import RecommendationScore
from .ratings import raw_rating_vector
from .richness import RichnessEvaluator

logger = logging.getLogger(__name__)

ALGORITHM_TYPE = "popular_fallback"

POPULARITY_WEIGHT = 0.7
SIMILARITY_WEIGHT = 0.3


def fallback_similarity(target: dict[int, float], candidate: dict[int, float]) -> float:
    """Dot product over shared restaurants divided by the full-vector norms."""
    if not target or not candidate:
        return 0.0
    shared = set(target) & set(candidate)
    if not shared:
        return 0.0
    dot = sum(target[r] * candidate[r] for r in sorted(shared))
    norm1 = math.sqrt(sum(x * x for x in target.values()))
    norm2 = math.sqrt(sum(x * x for x in candidate.values()))
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return dot / (norm1 * norm2)


class PopularityFallback:
    """Rank recently active users by followers, visits and breadth of taste."""

    def __init__(
        self,
        visits: VisitRepository,
        follows: FollowRepository,
        users: UserDirectory,
        config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.visits = visits
        self.follows = follows
        self.users = users
        self.config = config
        self.clock = clock
        self.richness = RichnessEvaluator(visits, follows, clock)

    def popularity(self, user_id: int) -> float:
        followers = min(self.follows.get_followers_count(user_id) / 100.0, 1.0)
        visits = min(self.visits.get_visit_count(user_id) / 50.0, 1.0)
        restaurants = min(self.visits.get_visited_restaurants_count(user_id) / 20.0, 1.0)
        return followers * 0.5 + visits * 0.3 + restaurants * 0.2

    def recommend(self, user_id: int, limit: int, exclude: set[int] | None = None) -> list[RecommendationScore]:
        logger.debug("Running popularity fallback for user %s", user_id)
        excluded = {user_id, *self.follows.get_following_ids(user_id), *(exclude or ())}
        target_vector = raw_rating_vector(self.visits.find_by_user_id(user_id))
        active = self.visits.get_active_user_ids(
            self.config.performance.active_user_window_days, now=self.clock(),
        )

        scored: list[RecommendationScore] = []
        for candidate_id in active:
            if candidate_id in excluded:
                continue
            popularity = self.popularity(candidate_id)
            similarity = fallback_similarity(
                target_vector, raw_rating_vector(self.visits.find_by_user_id(candidate_id)),
            )
            profile = self.users.get_user(candidate_id)
            scored.append(RecommendationScore(
                user_id=candidate_id,
                user_name=self.users.display_name(candidate_id),
                user_avatar=profile.avatar_url if profile else None,
                score=popularity * POPULARITY_WEIGHT + similarity * SIMILARITY_WEIGHT,
                algorithm_type=ALGORITHM_TYPE,
                similarity=similarity,
                activity_score=self.richness.activity_score(candidate_id),
                reason=self._reason(candidate_id, popularity),
            ))

        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:limit]

    def _reason(self, candidate_id: int, popularity: float) -> str:
        name = self.users.display_name(candidate_id)
        if popularity >= 0.8:
            return f"{name} is one of the most active members, with plenty of restaurant experiences to share"
        if popularity >= 0.6:
            return f"{name} shares restaurant experiences often and is worth a follow"
        return f"{name} is fairly active in the community"
