"""
Hybrid fusion of collaborative and social recommendations.

The three strategies are plain functions over already-ranked engine
outputs; ``HybridEngine`` fetches those outputs, picks the strategy and
handles result caching.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum

from .cache import ResultCache, hybrid_key
from .collaborative import CollaborativeEngine
from .config import DEFAULT_RECOMMENDATION_CONFIG, HybridConfig, HybridStrategy, RecommendationConfig
from .models import RecommendationScore, UserDataRichness
from .popularity import PopularityFallback
from .richness import FusionWeights, RichnessEvaluator, dynamic_weights
from .social import SocialEngine

logger = logging.getLogger(__name__)

WEIGHTED_LABEL = "hybrid_weighted"
CASCADING_LABEL = "hybrid_cascading"
SWITCHING_WEIGHTED_LABEL = "hybrid_switching_weighted"
SWITCHING_COLLABORATIVE_LABEL = "hybrid_switching_collaborative"
SWITCHING_SOCIAL_LABEL = "hybrid_switching_social"

NEW_TYPE_DIVERSITY = 1.0
REPEATED_TYPE_DIVERSITY = 0.5


class SwitchingBranch(str, Enum):
    WEIGHTED = "weighted"
    COLLABORATIVE = "collaborative"
    SOCIAL = "social"
    FALLBACK = "fallback"


def parse_strategy(value: str | HybridStrategy | None, default: HybridStrategy = HybridStrategy.WEIGHTED) -> HybridStrategy:
    """Case-insensitive strategy lookup; unknown names fall back to ``default``."""
    if value is None or value == "":
        return default
    if isinstance(value, HybridStrategy):
        return value
    try:
        return HybridStrategy(value.strip().upper())
    except ValueError:
        logger.warning("Unknown hybrid strategy %r, using %s", value, default.value)
        return default


def relabel(recommendations: Iterable[RecommendationScore], label: str) -> list[RecommendationScore]:
    return [rec.model_copy(update={"algorithm_type": label}) for rec in recommendations]


def weighted_fusion(
    collaborative: list[RecommendationScore],
    social: list[RecommendationScore],
    weights: FusionWeights,
    limit: int,
    label: str = WEIGHTED_LABEL,
) -> list[RecommendationScore]:
    """
    Blend both lists by weighted score.

    A candidate present in both lists gets the sum of its weighted scores
    and keeps the longer of the two reasons. Output is sorted by score
    (stable) and truncated to ``limit``.
    """
    merged: dict[int, RecommendationScore] = {}
    for rec in collaborative:
        merged[rec.user_id] = rec.with_score(rec.score * weights.collaborative, algorithm_type=label)

    for rec in social:
        weighted = rec.score * weights.social
        existing = merged.get(rec.user_id)
        if existing is None:
            merged[rec.user_id] = rec.with_score(weighted, algorithm_type=label)
            continue
        reason = rec.reason if len(rec.reason) > len(existing.reason) else existing.reason
        merged[rec.user_id] = existing.with_score(
            existing.score + weighted,
            reason=reason,
            social_distance=rec.social_distance,
            mutual_follow_count=rec.mutual_follow_count,
        )

    ranked = sorted(merged.values(), key=lambda r: r.score, reverse=True)
    return ranked[:limit]


def cascading_fusion(
    social: list[RecommendationScore],
    collaborative: list[RecommendationScore],
    popular: list[RecommendationScore],
    limit: int,
    social_ratio: float = 0.6,
    label: str = CASCADING_LABEL,
) -> list[RecommendationScore]:
    """Fill up to ``limit`` slots from social, then collaborative, then popular."""
    chosen: list[RecommendationScore] = []
    seen: set[int] = set()

    def take(source: list[RecommendationScore], cap: int) -> None:
        for rec in source:
            if len(chosen) >= cap:
                return
            if rec.user_id in seen:
                continue
            seen.add(rec.user_id)
            chosen.append(rec.model_copy(update={"algorithm_type": label}))

    take(social, min(int(limit * social_ratio), limit))
    take(collaborative, limit)
    take(popular, limit)
    return chosen


def choose_switching_branch(richness: UserDataRichness, config: HybridConfig) -> SwitchingBranch:
    visits = richness.restaurant_visit_count
    following = richness.following_count
    if visits >= config.rich_visit_count and following >= config.rich_following_count:
        return SwitchingBranch.WEIGHTED
    if visits >= config.min_restaurant_visits_for_switching:
        return SwitchingBranch.COLLABORATIVE
    if following >= config.min_following_count_for_switching:
        return SwitchingBranch.SOCIAL
    return SwitchingBranch.FALLBACK


def diversify(
    recommendations: list[RecommendationScore],
    threshold: float,
    max_results: int = 10,
) -> list[RecommendationScore]:
    """
    Greedy pass favouring algorithm variety over raw score.

    An algorithm type not yet selected scores 1.0, a repeated one 0.5. A
    candidate is kept when nothing is selected yet or its score reaches
    ``threshold``.
    """
    selected: list[RecommendationScore] = []
    seen_types: set[str] = set()
    for rec in recommendations:
        diversity = REPEATED_TYPE_DIVERSITY if rec.algorithm_type in seen_types else NEW_TYPE_DIVERSITY
        if selected and diversity < threshold:
            continue
        selected.append(rec)
        seen_types.add(rec.algorithm_type)
        if len(selected) >= max_results:
            break
    return selected


class HybridEngine:
    def __init__(
        self,
        collaborative: CollaborativeEngine,
        social: SocialEngine,
        popularity: PopularityFallback,
        richness: RichnessEvaluator,
        result_cache: ResultCache,
        config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
    ) -> None:
        self.collaborative = collaborative
        self.social = social
        self.popularity = popularity
        self.richness = richness
        self.result_cache = result_cache
        self.config = config

    def generate(
        self, user_id: int, limit: int, strategy: HybridStrategy | str | None = None,
    ) -> tuple[list[RecommendationScore], bool]:
        """Return ``(recommendations, cache_hit)`` for one request."""
        chosen = parse_strategy(strategy, self.config.hybrid.default_strategy)
        key = hybrid_key(chosen.value, user_id, limit, self.config.cache)
        ttl = self.config.cache.hybrid_ttl_minutes * 60
        result, hit = self.result_cache.get_or_compute(key, ttl, lambda: self._dispatch(user_id, limit, chosen))
        if hit:
            logger.info("Hybrid cache hit for user %s (%s, limit=%s)", user_id, chosen.value, limit)
        return result, hit

    def recommend(
        self, user_id: int, limit: int, strategy: HybridStrategy | str | None = None,
    ) -> list[RecommendationScore]:
        return self.generate(user_id, limit, strategy)[0]

    def diversify(self, recommendations: list[RecommendationScore], threshold: float | None = None) -> list[RecommendationScore]:
        cfg = self.config.hybrid
        return diversify(
            recommendations,
            cfg.diversity_threshold if threshold is None else threshold,
            cfg.max_diversified_results,
        )

    def _dispatch(self, user_id: int, limit: int, strategy: HybridStrategy) -> list[RecommendationScore]:
        logger.info("Generating %s hybrid recommendations for user %s (limit=%s)", strategy.value, user_id, limit)
        if strategy is HybridStrategy.SWITCHING:
            return self._switching(user_id, limit)
        if strategy is HybridStrategy.CASCADING:
            return self._cascading(user_id, limit)
        return self._weighted(user_id, limit, WEIGHTED_LABEL)

    def _weighted(self, user_id: int, limit: int, label: str, richness: UserDataRichness | None = None) -> list[RecommendationScore]:
        collaborative = self.collaborative.recommend(user_id, limit * 2)
        social = self.social.recommend(user_id, limit * 2)
        richness = richness or self.richness.evaluate(user_id)
        balanced = FusionWeights(self.config.hybrid.collaborative_weight, self.config.hybrid.social_weight)
        weights = dynamic_weights(richness, balanced)
        logger.debug(
            "User %s fusion weights: collaborative=%.2f social=%.2f",
            user_id, weights.collaborative, weights.social,
        )
        return weighted_fusion(collaborative, social, weights, limit, label)

    def _switching(self, user_id: int, limit: int) -> list[RecommendationScore]:
        richness = self.richness.evaluate(user_id)
        branch = choose_switching_branch(richness, self.config.hybrid)
        logger.debug("User %s switching branch: %s", user_id, branch.value)
        if branch is SwitchingBranch.WEIGHTED:
            return self._weighted(user_id, limit, SWITCHING_WEIGHTED_LABEL, richness)
        if branch is SwitchingBranch.COLLABORATIVE:
            return relabel(self.collaborative.recommend(user_id, limit), SWITCHING_COLLABORATIVE_LABEL)
        if branch is SwitchingBranch.SOCIAL:
            return relabel(self.social.recommend(user_id, limit), SWITCHING_SOCIAL_LABEL)
        return self.popularity.recommend(user_id, limit)

    def _cascading(self, user_id: int, limit: int) -> list[RecommendationScore]:
        ratio = self.config.hybrid.social_ratio
        social = self.social.recommend(user_id, limit)
        collaborative = self.collaborative.recommend(user_id, limit * 2)
        result = cascading_fusion(social, collaborative, [], limit, ratio)
        if len(result) < limit:
            popular = self.popularity.recommend(
                user_id, limit - len(result), exclude={rec.user_id for rec in result},
            )
            result = cascading_fusion(social, collaborative, popular, limit, ratio)
        return result
