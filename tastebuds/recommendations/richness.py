from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from .data_store import FollowRepository, VisitRepository
from .models import UserDataRichness

# (window days, visits for a full bucket, bucket weight)
_ACTIVITY_BUCKETS = ((7, 10, 0.5), (30, 30, 0.3), (90, 60, 0.2))
_QUALITY_WINDOW_DAYS = 30
_VISIT_TYPE_COUNT = 4


@dataclass(frozen=True)
class FusionWeights:
    collaborative: float
    social: float


VISIT_RICH_WEIGHTS = FusionWeights(collaborative=0.7, social=0.3)
SOCIAL_RICH_WEIGHTS = FusionWeights(collaborative=0.4, social=0.6)
BALANCED_WEIGHTS = FusionWeights(collaborative=0.6, social=0.4)


class RichnessEvaluator:
    """Summarise how much personalisation signal a user has."""

    def __init__(
        self,
        visits: VisitRepository,
        follows: FollowRepository,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.visits = visits
        self.follows = follows
        self.clock = clock

    def data_quality(self, user_id: int) -> float:
        """Rated share of the last 30 days' visits (60%) plus visit-type diversity (40%)."""
        since = self.clock() - timedelta(days=_QUALITY_WINDOW_DAYS)
        recent = self.visits.find_by_user_id_and_date_range(user_id, since)
        if not recent:
            return 0.0
        rated = sum(1 for v in recent if v.rating is not None) / len(recent)
        diversity = min(len({v.visit_type for v in recent}) / _VISIT_TYPE_COUNT, 1.0)
        return rated * 0.6 + diversity * 0.4

    def activity_score(self, user_id: int) -> float:
        now = self.clock()
        score = 0.0
        for days, full, weight in _ACTIVITY_BUCKETS:
            count = len(self.visits.find_by_user_id_and_date_range(user_id, now - timedelta(days=days)))
            score += min(count / full, 1.0) * weight
        return score

    def evaluate(self, user_id: int) -> UserDataRichness:
        return UserDataRichness(
            user_id=user_id,
            restaurant_visit_count=self.visits.get_visit_count(user_id),
            visited_restaurants_count=self.visits.get_visited_restaurants_count(user_id),
            following_count=self.follows.get_following_count(user_id),
            followers_count=self.follows.get_followers_count(user_id),
            data_quality=self.data_quality(user_id),
            activity_score=self.activity_score(user_id),
        )


def dynamic_weights(richness: UserDataRichness, balanced: FusionWeights = BALANCED_WEIGHTS) -> FusionWeights:
    """Lean on whichever signal the user has plenty of, else use ``balanced``."""
    if richness.restaurant_visit_count >= 20 and richness.visited_restaurants_count >= 10:
        return VISIT_RICH_WEIGHTS
    if richness.following_count >= 20 and richness.followers_count >= 10:
        return SOCIAL_RICH_WEIGHTS
    return balanced
