from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime, timedelta

from .models import SimilarityEntry, SimilarityStats


def ordered_pair(user_a: int, user_b: int) -> tuple[int, int]:
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


class SimilarityCacheRepository:
    """
    Pairwise similarity cache.

    Entries are stored under ``(min_id, max_id, algorithm)``; lookups accept
    either ordering of the pair.
    """

    def __init__(self) -> None:
        self._entries: dict[tuple[int, int, str], SimilarityEntry] = {}
        self._lock = threading.Lock()

    def find_by_user_pair_and_algorithm(
        self, user1_id: int, user2_id: int, algorithm_type: str,
    ) -> SimilarityEntry | None:
        with self._lock:
            entry = self._entries.get((user1_id, user2_id, algorithm_type))
            if entry is None:
                entry = self._entries.get((user2_id, user1_id, algorithm_type))
            return entry.model_copy() if entry else None

    def upsert(self, entry: SimilarityEntry) -> SimilarityEntry:
        low, high = ordered_pair(entry.user1_id, entry.user2_id)
        stored = entry.model_copy(update={"user1_id": low, "user2_id": high})
        with self._lock:
            self._entries[(low, high, stored.algorithm_type)] = stored
        return stored

    def insert_batch(self, entries: Iterable[SimilarityEntry]) -> int:
        count = 0
        for entry in entries:
            self.upsert(entry)
            count += 1
        return count

    def delete_older_than(self, days: int, now: datetime | None = None) -> int:
        cutoff = (now or datetime.now()) - timedelta(days=days)
        with self._lock:
            stale = [key for key, e in self._entries.items() if e.last_calculated < cutoff]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def find_by_user_id(self, user_id: int) -> list[SimilarityEntry]:
        with self._lock:
            return [
                e.model_copy() for e in self._entries.values()
                if user_id in (e.user1_id, e.user2_id)
            ]

    def count_by_user(self, user_id: int) -> int:
        return len(self.find_by_user_id(user_id))

    def get_similarity_stats(self, user_id: int, algorithm_type: str | None = None) -> SimilarityStats:
        scores = [
            e.similarity_score for e in self.find_by_user_id(user_id)
            if algorithm_type is None or e.algorithm_type == algorithm_type
        ]
        if not scores:
            return SimilarityStats(user_id=user_id, total_count=0)
        return SimilarityStats(
            user_id=user_id,
            total_count=len(scores),
            avg_similarity=sum(scores) / len(scores),
            max_similarity=max(scores),
            min_similarity=min(scores),
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
