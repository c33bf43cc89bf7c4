from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from .cache import ResultCache
from .collaborative import CollaborativeEngine
from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from .models import SimilarityEntry
from .record_store import RecommendationRepository
from .similarity_store import SimilarityCacheRepository, ordered_pair

logger = logging.getLogger(__name__)


class MaintenanceJobs:
    """Periodic similarity refresh and retention cleanup."""

    def __init__(
        self,
        collaborative: CollaborativeEngine,
        similarity_cache: SimilarityCacheRepository,
        records: RecommendationRepository,
        result_cache: ResultCache,
        config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG,
    ) -> None:
        self.collaborative = collaborative
        self.similarity_cache = similarity_cache
        self.records = records
        self.result_cache = result_cache
        self.config = config

    def refresh_similarities(self) -> int:
        """Recompute similarity entries for every recently active user."""
        perf = self.config.performance
        active = self.collaborative.visits.get_active_user_ids(
            perf.active_user_window_days, now=self.collaborative.clock(),
        )
        logger.info("Refreshing similarities for %d active users", len(active))

        seen: set[tuple[int, int]] = set()
        pending: list[SimilarityEntry] = []
        written = 0
        for user_id in active:
            for entry in self.collaborative.compute_similarity_entries(user_id):
                pair = ordered_pair(entry.user1_id, entry.user2_id)
                if pair in seen:
                    continue
                seen.add(pair)
                pending.append(entry)
                if len(pending) >= perf.batch_size:
                    written += self.similarity_cache.insert_batch(pending)
                    pending = []
        if pending:
            written += self.similarity_cache.insert_batch(pending)

        logger.info("Similarity refresh wrote %d entries", written)
        return written

    def purge_expired(self) -> dict[str, int]:
        perf = self.config.performance
        purged = {
            "similarities": self.similarity_cache.delete_older_than(perf.similarity_cache_retention_days),
            "recommendations": self.records.delete_older_than(perf.recommendation_retention_days),
            "cached_results": self.result_cache.purge_expired(),
        }
        logger.info("Purged expired data: %s", purged)
        return purged


class MaintenanceScheduler:
    """Runs each job on its own daemon thread at a fixed interval."""

    def __init__(self, jobs: MaintenanceJobs, config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG) -> None:
        self.jobs = jobs
        self.config = config
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def _loop(self, name: str, interval_seconds: float, job: Callable[[], object]) -> None:
        while not self._stop.wait(interval_seconds):
            try:
                job()
            except Exception:
                logger.error("Scheduled job %s failed", name, exc_info=True)

    def start(self) -> None:
        if self.running:
            return
        perf = self.config.performance
        self._stop.clear()
        schedule = [
            ("similarity-refresh", perf.similarity_refresh_interval_hours * 3600, self.jobs.refresh_similarities),
            ("purge-expired", perf.cleanup_interval_hours * 3600, self.jobs.purge_expired),
        ]
        self._threads = [
            threading.Thread(target=self._loop, args=entry, name=entry[0], daemon=True)
            for entry in schedule
        ]
        for thread in self._threads:
            thread.start()
        logger.info("Maintenance scheduler started")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info("Maintenance scheduler stopped")
