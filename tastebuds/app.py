from __future__ import annotations

import logging
import os
import threading
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from .analytics.aggregator import compute_analytics
from .analytics.store import get_events
from .auth.dependencies import require_admin, require_user, require_user_id
from .auth.users import authenticate
from .recommendations.config import load_config
from .recommendations.data_store import SAMPLE_DATA_DIR, load_dataset
from .recommendations.errors import (
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
    RecommendationError,
)
from .recommendations.hybrid import parse_strategy
from .recommendations.jobs import MaintenanceJobs, MaintenanceScheduler
from .recommendations.models import (
    AlgorithmStats,
    BatchViewedRequest,
    LoginRequest,
    RecommendationListResponse,
    RecommendationRecord,
    RecommendationStats,
    RecommendationStatusRequest,
)
from .recommendations.service import RecommendationService, build_service

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

_service: RecommendationService | None = None
_service_lock = threading.Lock()


def get_service() -> RecommendationService:
    """Build the service over the configured dataset on first use."""
    global _service
    with _service_lock:
        if _service is None:
            data_dir = Path(os.environ.get("TASTEBUDS_DATA_DIR", SAMPLE_DATA_DIR))
            _service = build_service(load_dataset(data_dir), load_config())
            logger.info("Recommendation service ready (data: %s)", data_dir)
        return _service


def reset_service(service: RecommendationService | None = None) -> None:
    """Swap the process-wide service, mainly for tests."""
    global _service
    with _service_lock:
        if _service is not None and _service is not service:
            _service.shutdown()
        _service = service


def build_scheduler(service: RecommendationService) -> MaintenanceScheduler:
    hybrid = service.hybrid
    jobs = MaintenanceJobs(
        hybrid.collaborative,
        hybrid.collaborative.similarity_cache,
        service.records,
        service.result_cache,
        service.config,
    )
    return MaintenanceScheduler(jobs, service.config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    service = get_service()
    scheduler = None
    if service.config.performance.enable_scheduled_tasks:
        scheduler = build_scheduler(service)
        scheduler.start()
    yield
    if scheduler is not None:
        scheduler.stop()
    logger.info("Shutting down recommendation service")
    # Drops the global too, so a later request builds a fresh service
    reset_service()


app = FastAPI(title="Tastebuds User Recommendation API", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=os.environ.get("SESSION_SECRET", "tastebuds-secret-change-in-production"),
)

_ERROR_STATUS = {
    InvalidRequestError: 400,
    PermissionDeniedError: 403,
    NotFoundError: 404,
}


@app.exception_handler(RecommendationError)
async def recommendation_error_handler(request: Request, exc: RecommendationError) -> JSONResponse:
    status = next((code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status, content={"detail": exc.message, "code": exc.code})


# ── Public endpoints ─────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# ── Auth endpoints ───────────────────────────────────────────────────────


@app.post("/auth/login")
def login(body: LoginRequest, request: Request) -> dict:
    user = authenticate(body.username, body.password)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    request.session["user"] = user
    return {"status": "ok", "user": user}


@app.post("/auth/logout")
def logout(request: Request) -> dict:
    request.session.clear()
    return {"status": "logged_out"}


@app.get("/auth/me")
def auth_me(user: dict = Depends(require_user)) -> dict:
    return user


# ── User recommendation endpoints ────────────────────────────────────────


@app.get("/user-recommendations", response_model=RecommendationListResponse)
def user_recommendations(
    limit: int = 10,
    algorithm: str | None = None,
    diversify: bool = False,
    user_id: int = Depends(require_user_id),
) -> RecommendationListResponse:
    service = get_service()
    strategy = parse_strategy(algorithm, service.config.hybrid.default_strategy)
    recommendations = service.get_user_recommendations(user_id, limit, strategy)
    if diversify:
        recommendations = service.diversify(recommendations)
    return RecommendationListResponse(
        recommendations=recommendations,
        strategy=strategy.value,
        total=len(recommendations),
    )


@app.get("/user-recommendations/paginated", response_model=list[RecommendationRecord])
def recommendations_page(
    page: int = 0,
    size: int = 10,
    user_id: int = Depends(require_user_id),
) -> list[RecommendationRecord]:
    return get_service().get_recommendations_page(user_id, page, size)


@app.get("/user-recommendations/unviewed", response_model=list[RecommendationRecord])
def unviewed_recommendations(
    limit: int = 10,
    user_id: int = Depends(require_user_id),
) -> list[RecommendationRecord]:
    return get_service().get_unviewed_recommendations(user_id, limit)


@app.get("/user-recommendations/stats", response_model=RecommendationStats)
def recommendation_stats(user_id: int = Depends(require_user_id)) -> RecommendationStats:
    return get_service().get_user_stats(user_id)


@app.get("/user-recommendations/algorithm-stats", response_model=list[AlgorithmStats])
def algorithm_stats(user_id: int = Depends(require_user_id)) -> list[AlgorithmStats]:
    return get_service().get_user_algorithm_stats(user_id)


@app.get("/user-recommendations/recent-users")
def recently_recommended(
    days: int = 7,
    user_id: int = Depends(require_user_id),
) -> dict:
    return {"user_ids": get_service().get_recently_recommended_user_ids(user_id, days)}


@app.put("/user-recommendations/batch-viewed")
def batch_viewed(body: BatchViewedRequest, user_id: int = Depends(require_user_id)) -> dict:
    updated = get_service().batch_mark_as_viewed(user_id, body.recommendation_ids)
    return {"status": "ok", "updated": updated}


@app.delete("/user-recommendations/clear")
def clear_recommendations(user_id: int = Depends(require_user_id)) -> dict:
    return {"status": "ok", "deleted": get_service().clear_all_recommendations(user_id)}


@app.post("/user-recommendations/warmup-cache")
def warmup_cache(user_id: int = Depends(require_user_id)) -> dict:
    return {"status": "ok", "warmed": get_service().warmup_cache(user_id)}


# ── Admin endpoints ──────────────────────────────────────────────────────


@app.get("/user-recommendations/global-algorithm-stats", response_model=list[AlgorithmStats])
def global_algorithm_stats(
    days: int = Query(30),
    user: dict = Depends(require_admin),
) -> list[AlgorithmStats]:
    return get_service().get_global_algorithm_stats(days)


@app.delete("/user-recommendations/cleanup-expired")
def cleanup_expired(user: dict = Depends(require_admin)) -> dict:
    return {"status": "ok", "deleted": get_service().clean_expired_recommendations()}


@app.get("/cache/stats")
def cache_stats(user: dict = Depends(require_admin)) -> dict:
    return get_service().result_cache.stats()


@app.get("/analytics")
def analytics(user: dict = Depends(require_admin)) -> dict:
    threshold = get_service().config.performance.slow_request_threshold_ms
    return compute_analytics(get_events(), threshold)


# ── Single-record endpoints (registered last so fixed paths win) ─────────


@app.get("/user-recommendations/{recommendation_id}", response_model=RecommendationRecord)
def recommendation_detail(
    recommendation_id: int,
    user_id: int = Depends(require_user_id),
) -> RecommendationRecord:
    return get_service().get_recommendation_detail(user_id, recommendation_id)


@app.put("/user-recommendations/{recommendation_id}/status", response_model=RecommendationRecord)
def recommendation_status(
    recommendation_id: int,
    body: RecommendationStatusRequest,
    user_id: int = Depends(require_user_id),
) -> RecommendationRecord:
    return get_service().mark_recommendation_status(
        user_id, recommendation_id, body.is_interested, body.feedback,
    )


@app.delete("/user-recommendations/{recommendation_id}")
def delete_recommendation(
    recommendation_id: int,
    user_id: int = Depends(require_user_id),
) -> dict:
    get_service().delete_recommendation(user_id, recommendation_id)
    return {"status": "deleted"}
