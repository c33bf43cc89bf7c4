from __future__ import annotations

import itertools
import threading
from collections.abc import Iterable
from datetime import datetime, timedelta

from .models import AlgorithmStats, RecommendationRecord


class RecommendationRepository:
    """Persisted recommendation records with per-user feedback state."""

    def __init__(self) -> None:
        self._records: dict[int, RecommendationRecord] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # ── single-record access ─────────────────────────────────────────────

    def get(self, record_id: int) -> RecommendationRecord | None:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy() if record else None

    def find_by_user_and_recommended_user_and_algorithm(
        self, user_id: int, recommended_user_id: int, algorithm_type: str,
    ) -> RecommendationRecord | None:
        with self._lock:
            for record in self._records.values():
                if (
                    record.user_id == user_id
                    and record.recommended_user_id == recommended_user_id
                    and record.algorithm_type == algorithm_type
                ):
                    return record.model_copy()
        return None

    def insert(
        self,
        user_id: int,
        recommended_user_id: int,
        algorithm_type: str,
        score: float,
        reason: str,
        created_at: datetime | None = None,
    ) -> RecommendationRecord:
        with self._lock:
            record = RecommendationRecord(
                id=next(self._ids),
                user_id=user_id,
                recommended_user_id=recommended_user_id,
                algorithm_type=algorithm_type,
                score=score,
                reason=reason,
                created_at=created_at or datetime.now(),
            )
            self._records[record.id] = record
            return record.model_copy()

    def update(self, record: RecommendationRecord) -> RecommendationRecord:
        with self._lock:
            if record.id not in self._records:
                raise KeyError(record.id)
            stored = record.model_copy(update={"updated_at": datetime.now()})
            self._records[record.id] = stored
            return stored.model_copy()

    def delete(self, record_id: int) -> bool:
        with self._lock:
            return self._records.pop(record_id, None) is not None

    # ── per-user queries ─────────────────────────────────────────────────

    def _for_user(self, user_id: int) -> list[RecommendationRecord]:
        records = [r for r in self._records.values() if r.user_id == user_id]
        # Newest first; id breaks ties between records created in the same instant
        records.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return records

    def count_by_user(self, user_id: int) -> int:
        with self._lock:
            return len(self._for_user(user_id))

    def count_by_user_and_viewed(self, user_id: int, is_viewed: bool) -> int:
        with self._lock:
            return sum(1 for r in self._for_user(user_id) if r.is_viewed is is_viewed)

    def count_by_user_and_interested(self, user_id: int, is_interested: bool) -> int:
        with self._lock:
            return sum(1 for r in self._for_user(user_id) if r.is_interested is is_interested)

    def find_by_user_paginated(self, user_id: int, offset: int, limit: int) -> list[RecommendationRecord]:
        with self._lock:
            return [r.model_copy() for r in self._for_user(user_id)[offset:offset + limit]]

    def find_unviewed_by_user(self, user_id: int, limit: int) -> list[RecommendationRecord]:
        with self._lock:
            unviewed = [r for r in self._for_user(user_id) if not r.is_viewed]
            return [r.model_copy() for r in unviewed[:limit]]

    def batch_mark_viewed(self, record_ids: Iterable[int]) -> int:
        now = datetime.now()
        updated = 0
        with self._lock:
            for record_id in record_ids:
                record = self._records.get(record_id)
                if record is None:
                    continue
                self._records[record_id] = record.model_copy(update={"is_viewed": True, "updated_at": now})
                updated += 1
        return updated

    def delete_by_user(self, user_id: int) -> int:
        with self._lock:
            ids = [r.id for r in self._records.values() if r.user_id == user_id]
            for record_id in ids:
                del self._records[record_id]
        return len(ids)

    def delete_older_than(self, days: int, now: datetime | None = None) -> int:
        cutoff = (now or datetime.now()) - timedelta(days=days)
        with self._lock:
            ids = [r.id for r in self._records.values() if r.created_at < cutoff]
            for record_id in ids:
                del self._records[record_id]
        return len(ids)

    def get_recommended_user_ids(self, user_id: int, days: int, now: datetime | None = None) -> list[int]:
        cutoff = (now or datetime.now()) - timedelta(days=days)
        with self._lock:
            seen: dict[int, None] = {}
            for record in self._for_user(user_id):
                if record.created_at >= cutoff:
                    seen.setdefault(record.recommended_user_id, None)
            return list(seen)

    # ── aggregates ───────────────────────────────────────────────────────

    @staticmethod
    def _aggregate(records: list[RecommendationRecord]) -> list[AlgorithmStats]:
        grouped: dict[str, list[RecommendationRecord]] = {}
        for record in records:
            grouped.setdefault(record.algorithm_type, []).append(record)
        stats = [
            AlgorithmStats(
                algorithm_type=algorithm,
                total_count=len(group),
                avg_score=round(sum(r.score for r in group) / len(group), 4),
                viewed_count=sum(1 for r in group if r.is_viewed),
                interested_count=sum(1 for r in group if r.is_interested is True),
            )
            for algorithm, group in grouped.items()
        ]
        stats.sort(key=lambda s: (-s.total_count, s.algorithm_type))
        return stats

    def get_algorithm_stats_by_user(self, user_id: int) -> list[AlgorithmStats]:
        with self._lock:
            return self._aggregate(self._for_user(user_id))

    def get_global_algorithm_stats(self, days: int, now: datetime | None = None) -> list[AlgorithmStats]:
        cutoff = (now or datetime.now()) - timedelta(days=days)
        with self._lock:
            return self._aggregate([r for r in self._records.values() if r.created_at >= cutoff])

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
