from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from ..analytics.store import record_event
from .cache import ResultCache, user_key_patterns
from .collaborative import CollaborativeEngine
from .config import DEFAULT_RECOMMENDATION_CONFIG, HybridStrategy, RecommendationConfig
from .data_store import Dataset
from .errors import GenerationTimeoutError, InvalidRequestError, NotFoundError, PermissionDeniedError
from .hybrid import HybridEngine, parse_strategy
from .models import (
    AlgorithmStats,
    RecommendationRecord,
    RecommendationScore,
    RecommendationStats,
)
from .popularity import PopularityFallback
from .record_store import RecommendationRepository
from .richness import RichnessEvaluator
from .similarity_store import SimilarityCacheRepository
from .social import SocialEngine

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 20
MAX_GLOBAL_STATS_DAYS = 365
MAX_RECENT_DAYS = 90
WARMUP_LIMIT = 10


class RecommendationService:
    """
    User-facing recommendation operations.

    Generates hybrid recommendation lists under a time budget, persists
    what was served and applies per-user feedback to the stored records.
    """

    def __init__(
        self,
        hybrid: HybridEngine,
        records: RecommendationRepository,
        result_cache: ResultCache,
        config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
    ) -> None:
        self.hybrid = hybrid
        self.records = records
        self.result_cache = result_cache
        self.config = config
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="recommend")

    # ── generation ───────────────────────────────────────────────────────

    def _validate_limit(self, limit: int) -> None:
        max_limit = self.config.hybrid.max_limit
        if limit < 1 or limit > max_limit:
            raise InvalidRequestError(f"limit must be between 1 and {max_limit}", code="INVALID_LIMIT")

    def _generate_within_budget(
        self, user_id: int, limit: int, strategy: HybridStrategy,
    ) -> tuple[list[RecommendationScore], bool]:
        budget_ms = self.config.performance.max_generation_time_ms
        future = self._executor.submit(self.hybrid.generate, user_id, limit, strategy)
        try:
            return future.result(timeout=budget_ms / 1000)
        except FutureTimeoutError as exc:
            raise GenerationTimeoutError(
                f"generation for user {user_id} exceeded {budget_ms} ms",
            ) from exc

    def get_user_recommendations(
        self,
        user_id: int,
        limit: int | None = None,
        algorithm: str | HybridStrategy | None = None,
    ) -> list[RecommendationScore]:
        limit = self.config.collaborative.default_recommendation_count if limit is None else limit
        self._validate_limit(limit)
        strategy = parse_strategy(algorithm, self.config.hybrid.default_strategy)

        start_time = time.time()
        timed_out = False
        try:
            recommendations, cache_hit = self._generate_within_budget(user_id, limit, strategy)
        except GenerationTimeoutError:
            logger.warning("Recommendation generation timed out for user %s, serving popular users", user_id, exc_info=True)
            recommendations = self.hybrid.popularity.recommend(user_id, limit)
            cache_hit, timed_out = False, True

        self._save(user_id, recommendations)
        elapsed_ms = round((time.time() - start_time) * 1000, 1)
        if elapsed_ms > self.config.performance.slow_request_threshold_ms:
            logger.warning("Slow recommendation request for user %s: %.1f ms", user_id, elapsed_ms)

        record_event("recommendation", {
            "user_id": user_id,
            "strategy": strategy.value,
            "limit": limit,
            "results_returned": len(recommendations),
            "response_time_ms": elapsed_ms,
            "cache_hit": cache_hit,
            "timed_out": timed_out,
        })
        logger.info(
            "Served %d recommendations to user %s (%s, cache_hit=%s)",
            len(recommendations), user_id, strategy.value, cache_hit,
        )
        return recommendations

    def _save(self, user_id: int, recommendations: Iterable[RecommendationScore]) -> None:
        for rec in recommendations:
            existing = self.records.find_by_user_and_recommended_user_and_algorithm(
                user_id, rec.user_id, rec.algorithm_type,
            )
            if existing is None:
                self.records.insert(user_id, rec.user_id, rec.algorithm_type, rec.score, rec.reason)
            else:
                self.records.update(existing.model_copy(update={"score": rec.score, "reason": rec.reason}))

    def diversify(self, recommendations: list[RecommendationScore], threshold: float | None = None) -> list[RecommendationScore]:
        return self.hybrid.diversify(recommendations, threshold)

    def warmup_cache(self, user_id: int) -> dict[str, int]:
        """Precompute every strategy at the default page size."""
        warmed: dict[str, int] = {}
        for strategy in HybridStrategy:
            try:
                warmed[strategy.value] = len(self.hybrid.recommend(user_id, WARMUP_LIMIT, strategy))
            except Exception:
                logger.error("Cache warmup failed for user %s (%s)", user_id, strategy.value, exc_info=True)
        logger.info("Warmed recommendation cache for user %s: %s", user_id, warmed)
        return warmed

    def invalidate_user_cache(self, user_id: int) -> int:
        return self.result_cache.delete_matching(*user_key_patterns(user_id, self.config.cache))

    # ── feedback ─────────────────────────────────────────────────────────

    def _owned(self, user_id: int, recommendation_id: int) -> RecommendationRecord:
        record = self.records.get(recommendation_id)
        if record is None:
            raise NotFoundError(f"recommendation {recommendation_id} does not exist")
        if record.user_id != user_id:
            raise PermissionDeniedError(f"recommendation {recommendation_id} belongs to another user")
        return record

    def get_recommendation_detail(self, user_id: int, recommendation_id: int) -> RecommendationRecord:
        return self._owned(user_id, recommendation_id)

    def mark_recommendation_status(
        self,
        user_id: int,
        recommendation_id: int,
        is_interested: bool | None,
        feedback: str | None = None,
    ) -> RecommendationRecord:
        record = self._owned(user_id, recommendation_id)
        updated = self.records.update(record.model_copy(update={
            "is_viewed": True,
            "is_interested": is_interested,
            "feedback": feedback,
        }))
        self.invalidate_user_cache(user_id)
        return updated

    def batch_mark_as_viewed(self, user_id: int, recommendation_ids: list[int]) -> int:
        if not recommendation_ids:
            raise InvalidRequestError("recommendation_ids must not be empty")
        for recommendation_id in recommendation_ids:
            self._owned(user_id, recommendation_id)
        updated = self.records.batch_mark_viewed(recommendation_ids)
        self.invalidate_user_cache(user_id)
        return updated

    def delete_recommendation(self, user_id: int, recommendation_id: int) -> None:
        self._owned(user_id, recommendation_id)
        self.records.delete(recommendation_id)
        self.invalidate_user_cache(user_id)

    def clear_all_recommendations(self, user_id: int) -> int:
        deleted = self.records.delete_by_user(user_id)
        self.invalidate_user_cache(user_id)
        logger.info("Cleared %d recommendations for user %s", deleted, user_id)
        return deleted

    # ── reads ────────────────────────────────────────────────────────────

    def get_recommendations_page(self, user_id: int, page: int = 0, size: int = 10) -> list[RecommendationRecord]:
        if page < 0 or size < 1 or size > MAX_PAGE_SIZE:
            raise InvalidRequestError(
                f"page must be >= 0 and size between 1 and {MAX_PAGE_SIZE}", code="INVALID_PAGINATION",
            )
        return self.records.find_by_user_paginated(user_id, page * size, size)

    def get_unviewed_recommendations(self, user_id: int, limit: int = 10) -> list[RecommendationRecord]:
        self._validate_limit(limit)
        return self.records.find_unviewed_by_user(user_id, limit)

    def get_user_stats(self, user_id: int) -> RecommendationStats:
        total = self.records.count_by_user(user_id)
        viewed = self.records.count_by_user_and_viewed(user_id, True)
        interested = self.records.count_by_user_and_interested(user_id, True)
        return RecommendationStats(
            total_recommendations=total,
            viewed_count=viewed,
            interested_count=interested,
            click_through_rate=viewed / total if total else 0.0,
            conversion_rate=interested / viewed if viewed else 0.0,
        )

    def get_user_algorithm_stats(self, user_id: int) -> list[AlgorithmStats]:
        return self.records.get_algorithm_stats_by_user(user_id)

    def get_global_algorithm_stats(self, days: int = 30) -> list[AlgorithmStats]:
        if days < 1 or days > MAX_GLOBAL_STATS_DAYS:
            raise InvalidRequestError(f"days must be between 1 and {MAX_GLOBAL_STATS_DAYS}", code="INVALID_DAYS")
        return self.records.get_global_algorithm_stats(days)

    def get_recently_recommended_user_ids(self, user_id: int, days: int = 7) -> list[int]:
        if days < 1 or days > MAX_RECENT_DAYS:
            raise InvalidRequestError(f"days must be between 1 and {MAX_RECENT_DAYS}", code="INVALID_DAYS")
        return self.records.get_recommended_user_ids(user_id, days)

    # ── maintenance ──────────────────────────────────────────────────────

    def clean_expired_recommendations(self) -> int:
        retention = self.config.performance.recommendation_retention_days
        deleted = self.records.delete_older_than(retention)
        logger.info("Deleted %d recommendations older than %d days", deleted, retention)
        return deleted

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)


def build_service(
    dataset: Dataset,
    config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
    result_cache: ResultCache | None = None,
    similarity_cache: SimilarityCacheRepository | None = None,
    records: RecommendationRepository | None = None,
) -> RecommendationService:
    """Wire the engines over one dataset and return the service."""
    result_cache = result_cache if result_cache is not None else ResultCache()
    similarity_cache = similarity_cache if similarity_cache is not None else SimilarityCacheRepository()
    records = records if records is not None else RecommendationRepository()

    collaborative = CollaborativeEngine(
        dataset.visits, dataset.follows, dataset.users, similarity_cache, result_cache,
        restaurants=dataset.restaurants, config=config,
    )
    social = SocialEngine(dataset.visits, dataset.follows, dataset.users, result_cache, config)
    popularity = PopularityFallback(dataset.visits, dataset.follows, dataset.users, config)
    richness = RichnessEvaluator(dataset.visits, dataset.follows)
    hybrid = HybridEngine(collaborative, social, popularity, richness, result_cache, config)
    return RecommendationService(hybrid, records, result_cache, config)
