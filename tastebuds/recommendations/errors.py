from __future__ import annotations


class ConfigError(ValueError):
    """Raised when the recommendation configuration is invalid at load time."""


class RecommendationError(Exception):
    """Base class for caller-visible recommendation failures."""

    code = "RECOMMENDATION_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class InvalidRequestError(RecommendationError):
    code = "INVALID_REQUEST"


class NotFoundError(RecommendationError):
    code = "RECOMMENDATION_NOT_FOUND"


class PermissionDeniedError(RecommendationError):
    code = "PERMISSION_DENIED"


class GenerationTimeoutError(RecommendationError):
    code = "GENERATION_TIMEOUT"
