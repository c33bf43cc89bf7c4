from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


def clamp_score(value: float) -> float:
    """Clamp a score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


class VisitType(str, Enum):
    REVIEW = "REVIEW"
    RECOMMENDATION = "RECOMMENDATION"
    FAVORITE = "FAVORITE"
    CHECK_IN = "CHECK_IN"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value):
        # Rows from newer clients may carry types this service does not weight yet
        return cls.UNKNOWN


class Visit(BaseModel):
    user_id: int
    restaurant_id: int
    visit_type: VisitType
    rating: float | None = Field(default=None, ge=0.0, le=5.0)
    visit_count: int | None = None
    last_visit_time: datetime | None = None


class FollowEdge(BaseModel):
    follower_id: int
    following_id: int
    created_at: datetime | None = None


class UserProfile(BaseModel):
    id: int
    display_name: str
    avatar_url: str | None = None


class SimilarityEntry(BaseModel):
    user1_id: int
    user2_id: int
    algorithm_type: str
    similarity_score: float
    common_restaurant_count: int = 0
    last_calculated: datetime


class RecommendationScore(BaseModel):
    """Transient scored candidate produced inside one generation call."""

    user_id: int
    user_name: str
    user_avatar: str | None = None
    score: float
    algorithm_type: str
    similarity: float | None = None
    social_distance: int | None = None
    mutual_follow_count: int = 0
    common_restaurant_count: int = 0
    reason: str = ""
    activity_score: float | None = None

    @field_validator("score")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_score(value)

    def with_score(self, score: float, **changes) -> "RecommendationScore":
        return self.model_copy(update={"score": clamp_score(score), **changes})


class RecommendationRecord(BaseModel):
    id: int
    user_id: int
    recommended_user_id: int
    algorithm_type: str
    score: float = Field(ge=0.0, le=1.0)
    reason: str = ""
    is_viewed: bool = False
    is_interested: bool | None = None
    feedback: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class UserDataRichness(BaseModel):
    user_id: int
    restaurant_visit_count: int
    visited_restaurants_count: int
    following_count: int
    followers_count: int
    data_quality: float
    activity_score: float


class AlgorithmStats(BaseModel):
    algorithm_type: str
    total_count: int
    avg_score: float
    viewed_count: int
    interested_count: int


class SimilarityStats(BaseModel):
    user_id: int
    total_count: int
    avg_similarity: float | None = None
    max_similarity: float | None = None
    min_similarity: float | None = None


class RecommendationStats(BaseModel):
    total_recommendations: int
    viewed_count: int
    interested_count: int
    click_through_rate: float
    conversion_rate: float


# ── HTTP request / response schemas ──────────────────────────────────────


class RecommendationStatusRequest(BaseModel):
    is_interested: bool | None = None
    feedback: str | None = Field(default=None, max_length=500)


class BatchViewedRequest(BaseModel):
    recommendation_ids: list[int] = Field(..., min_length=1)


class RecommendationListResponse(BaseModel):
    recommendations: list[RecommendationScore]
    strategy: str
    total: int


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
