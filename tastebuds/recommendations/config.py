from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError

_ENV_PREFIX = "TASTEBUDS_"


class SimilarityMethod(str, Enum):
    COSINE = "cosine"
    PEARSON = "pearson"
    ADJUSTED_COSINE = "adjusted_cosine"


class HybridStrategy(str, Enum):
    WEIGHTED = "WEIGHTED"
    SWITCHING = "SWITCHING"
    CASCADING = "CASCADING"


def _require_sum_to_one(section: str, **weights: float) -> None:
    total = sum(weights.values())
    if not math.isclose(total, 1.0, abs_tol=1e-9):
        names = " + ".join(weights)
        raise ConfigError(f"{section}: {names} must sum to 1.0, got {total:.4f}")


def _require_unit_interval(section: str, name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigError(f"{section}: {name} must be within [0, 1], got {value}")


def _require_positive(section: str, **values: float) -> None:
    for name, value in values.items():
        if value <= 0:
            raise ConfigError(f"{section}: {name} must be positive, got {value}")


@dataclass(frozen=True)
class CollaborativeConfig:
    similarity_threshold: float = 0.3
    similarity_method: SimilarityMethod = SimilarityMethod.COSINE
    similarity_weight: float = 0.6
    restaurant_weight: float = 0.3
    social_weight: float = 0.1
    max_recommendations_per_user: int = 50
    default_recommendation_count: int = 10
    min_common_restaurants: int = 1
    min_user_visits: int = 1

    def __post_init__(self) -> None:
        _require_sum_to_one(
            "collaborative",
            similarity_weight=self.similarity_weight,
            restaurant_weight=self.restaurant_weight,
            social_weight=self.social_weight,
        )
        _require_unit_interval("collaborative", "similarity_threshold", self.similarity_threshold)
        _require_positive(
            "collaborative",
            max_recommendations_per_user=self.max_recommendations_per_user,
            default_recommendation_count=self.default_recommendation_count,
            min_common_restaurants=self.min_common_restaurants,
            min_user_visits=self.min_user_visits,
        )


@dataclass(frozen=True)
class SocialConfig:
    first_degree_weight: float = 1.0
    second_degree_weight: float = 0.5
    similarity_weight: float = 0.7
    social_distance_weight: float = 0.3
    mutual_follow_bonus: float = 0.2
    max_mutual_follow_bonus: int = 10
    max_first_degree_recommendations: int = 20
    max_second_degree_recommendations: int = 30

    def __post_init__(self) -> None:
        _require_sum_to_one(
            "social",
            similarity_weight=self.similarity_weight,
            social_distance_weight=self.social_distance_weight,
        )
        _require_unit_interval("social", "first_degree_weight", self.first_degree_weight)
        _require_unit_interval("social", "second_degree_weight", self.second_degree_weight)
        _require_unit_interval("social", "mutual_follow_bonus", self.mutual_follow_bonus)
        _require_positive(
            "social",
            first_degree_weight=self.first_degree_weight,
            max_mutual_follow_bonus=self.max_mutual_follow_bonus,
            max_first_degree_recommendations=self.max_first_degree_recommendations,
            max_second_degree_recommendations=self.max_second_degree_recommendations,
        )


@dataclass(frozen=True)
class HybridConfig:
    default_strategy: HybridStrategy = HybridStrategy.WEIGHTED
    collaborative_weight: float = 0.6
    social_weight: float = 0.4
    social_ratio: float = 0.6
    min_restaurant_visits_for_switching: int = 5
    min_following_count_for_switching: int = 3
    rich_visit_count: int = 10
    rich_following_count: int = 5
    diversity_threshold: float = 0.3
    max_diversified_results: int = 10
    max_limit: int = 50

    def __post_init__(self) -> None:
        _require_sum_to_one(
            "hybrid",
            collaborative_weight=self.collaborative_weight,
            social_weight=self.social_weight,
        )
        _require_unit_interval("hybrid", "social_ratio", self.social_ratio)
        _require_unit_interval("hybrid", "diversity_threshold", self.diversity_threshold)
        _require_positive(
            "hybrid",
            min_restaurant_visits_for_switching=self.min_restaurant_visits_for_switching,
            min_following_count_for_switching=self.min_following_count_for_switching,
            rich_visit_count=self.rich_visit_count,
            rich_following_count=self.rich_following_count,
            max_diversified_results=self.max_diversified_results,
            max_limit=self.max_limit,
        )


@dataclass(frozen=True)
class CacheConfig:
    collaborative_ttl_minutes: int = 30
    social_ttl_minutes: int = 30
    hybrid_ttl_minutes: int = 30
    collaborative_prefix: str = "collaborative_recommendations"
    social_prefix: str = "social_recommendations"
    hybrid_prefix: str = "hybrid_recommendations"

    def __post_init__(self) -> None:
        _require_positive(
            "cache",
            collaborative_ttl_minutes=self.collaborative_ttl_minutes,
            social_ttl_minutes=self.social_ttl_minutes,
            hybrid_ttl_minutes=self.hybrid_ttl_minutes,
        )


@dataclass(frozen=True)
class PerformanceConfig:
    enable_scheduled_tasks: bool = True
    similarity_refresh_interval_hours: float = 6.0
    cleanup_interval_hours: float = 24.0
    recommendation_retention_days: int = 30
    similarity_cache_retention_days: int = 7
    active_user_window_days: int = 30
    batch_size: int = 100
    slow_request_threshold_ms: int = 1000
    max_generation_time_ms: int = 5000

    def __post_init__(self) -> None:
        _require_positive(
            "performance",
            similarity_refresh_interval_hours=self.similarity_refresh_interval_hours,
            cleanup_interval_hours=self.cleanup_interval_hours,
            recommendation_retention_days=self.recommendation_retention_days,
            similarity_cache_retention_days=self.similarity_cache_retention_days,
            active_user_window_days=self.active_user_window_days,
            batch_size=self.batch_size,
            slow_request_threshold_ms=self.slow_request_threshold_ms,
            max_generation_time_ms=self.max_generation_time_ms,
        )


@dataclass(frozen=True)
class RecommendationConfig:
    collaborative: CollaborativeConfig = field(default_factory=CollaborativeConfig)
    social: SocialConfig = field(default_factory=SocialConfig)
    hybrid: HybridConfig = field(default_factory=HybridConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)


def _env(name: str, default, cast=str):
    raw = os.getenv(_ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        if cast is bool:
            return raw.strip().lower() in ("1", "true", "yes", "on")
        return cast(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{_ENV_PREFIX}{name}: cannot parse {raw!r}") from exc


def load_config(env_file: Path | None = None) -> RecommendationConfig:
    """
    Build the recommendation config from ``TASTEBUDS_*`` environment variables.

    Unset variables keep their defaults. Any invalid combination raises
    ``ConfigError`` here, at startup.
    """
    load_dotenv(env_file or Path(__file__).resolve().parent.parent.parent / ".env")

    collaborative = CollaborativeConfig(
        similarity_threshold=_env("SIMILARITY_THRESHOLD", 0.3, float),
        similarity_method=_env("SIMILARITY_METHOD", SimilarityMethod.COSINE, SimilarityMethod),
        similarity_weight=_env("CF_SIMILARITY_WEIGHT", 0.6, float),
        restaurant_weight=_env("CF_RESTAURANT_WEIGHT", 0.3, float),
        social_weight=_env("CF_SOCIAL_WEIGHT", 0.1, float),
        max_recommendations_per_user=_env("MAX_RECOMMENDATIONS_PER_USER", 50, int),
        default_recommendation_count=_env("DEFAULT_RECOMMENDATION_COUNT", 10, int),
        min_common_restaurants=_env("MIN_COMMON_RESTAURANTS", 1, int),
        min_user_visits=_env("MIN_USER_VISITS", 1, int),
    )
    social = SocialConfig(
        first_degree_weight=_env("FIRST_DEGREE_WEIGHT", 1.0, float),
        second_degree_weight=_env("SECOND_DEGREE_WEIGHT", 0.5, float),
        similarity_weight=_env("SOCIAL_SIMILARITY_WEIGHT", 0.7, float),
        social_distance_weight=_env("SOCIAL_DISTANCE_WEIGHT", 0.3, float),
        mutual_follow_bonus=_env("MUTUAL_FOLLOW_BONUS", 0.2, float),
        max_mutual_follow_bonus=_env("MAX_MUTUAL_FOLLOW_BONUS", 10, int),
        max_first_degree_recommendations=_env("MAX_FIRST_DEGREE_RECOMMENDATIONS", 20, int),
        max_second_degree_recommendations=_env("MAX_SECOND_DEGREE_RECOMMENDATIONS", 30, int),
    )
    hybrid = HybridConfig(
        default_strategy=_env("DEFAULT_STRATEGY", HybridStrategy.WEIGHTED, lambda s: HybridStrategy(s.upper())),
        collaborative_weight=_env("HYBRID_COLLABORATIVE_WEIGHT", 0.6, float),
        social_weight=_env("HYBRID_SOCIAL_WEIGHT", 0.4, float),
        social_ratio=_env("SOCIAL_RATIO", 0.6, float),
        min_restaurant_visits_for_switching=_env("MIN_VISITS_FOR_SWITCHING", 5, int),
        min_following_count_for_switching=_env("MIN_FOLLOWING_FOR_SWITCHING", 3, int),
        rich_visit_count=_env("RICH_VISIT_COUNT", 10, int),
        rich_following_count=_env("RICH_FOLLOWING_COUNT", 5, int),
        diversity_threshold=_env("DIVERSITY_THRESHOLD", 0.3, float),
        max_diversified_results=_env("MAX_DIVERSIFIED_RESULTS", 10, int),
        max_limit=_env("MAX_LIMIT", 50, int),
    )
    cache = CacheConfig(
        collaborative_ttl_minutes=_env("COLLABORATIVE_TTL_MINUTES", 30, int),
        social_ttl_minutes=_env("SOCIAL_TTL_MINUTES", 30, int),
        hybrid_ttl_minutes=_env("HYBRID_TTL_MINUTES", 30, int),
        collaborative_prefix=_env("COLLABORATIVE_CACHE_PREFIX", "collaborative_recommendations"),
        social_prefix=_env("SOCIAL_CACHE_PREFIX", "social_recommendations"),
        hybrid_prefix=_env("HYBRID_CACHE_PREFIX", "hybrid_recommendations"),
    )
    performance = PerformanceConfig(
        enable_scheduled_tasks=_env("ENABLE_SCHEDULED_TASKS", True, bool),
        similarity_refresh_interval_hours=_env("SIMILARITY_REFRESH_HOURS", 6.0, float),
        cleanup_interval_hours=_env("CLEANUP_INTERVAL_HOURS", 24.0, float),
        recommendation_retention_days=_env("RECOMMENDATION_RETENTION_DAYS", 30, int),
        similarity_cache_retention_days=_env("SIMILARITY_RETENTION_DAYS", 7, int),
        active_user_window_days=_env("ACTIVE_USER_WINDOW_DAYS", 30, int),
        batch_size=_env("BATCH_SIZE", 100, int),
        slow_request_threshold_ms=_env("SLOW_REQUEST_THRESHOLD_MS", 1000, int),
        max_generation_time_ms=_env("MAX_GENERATION_TIME_MS", 5000, int),
    )
    return RecommendationConfig(
        collaborative=collaborative,
        social=social,
        hybrid=hybrid,
        cache=cache,
        performance=performance,
    )


DEFAULT_RECOMMENDATION_CONFIG = RecommendationConfig()
