from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from tastebuds.recommendations.data_store import (
    SAMPLE_DATA_DIR,
    FollowRepository,
    RestaurantDirectory,
    UserDirectory,
    VisitRepository,
    load_dataset,
)
from tastebuds.recommendations.models import SimilarityEntry, VisitType
from tastebuds.recommendations.record_store import RecommendationRepository
from tastebuds.recommendations.similarity_store import SimilarityCacheRepository

NOW = datetime(2026, 6, 1, 12, 0, 0)


def _visits():
    return VisitRepository.from_records([
        {"user_id": 1, "restaurant_id": 10, "visit_type": "REVIEW", "rating": 5.0, "visit_count": 2,
         "last_visit_time": NOW - timedelta(days=1)},
        {"user_id": 1, "restaurant_id": 11, "visit_type": "favorite", "rating": None, "visit_count": None,
         "last_visit_time": NOW - timedelta(days=40)},
        {"user_id": 2, "restaurant_id": 10, "visit_type": "CHECK_IN", "rating": 3.0, "visit_count": 1,
         "last_visit_time": NOW - timedelta(days=3)},
        {"user_id": 3, "restaurant_id": 12, "visit_type": "REVIEW", "rating": 4.0, "visit_count": 1,
         "last_visit_time": NOW - timedelta(days=100)},
    ])


class TestVisitRepository:
    def test_find_by_user_id_newest_first(self):
        visits = _visits().find_by_user_id(1)
        assert [v.restaurant_id for v in visits] == [10, 11]
        assert visits[1].visit_type is VisitType.FAVORITE
        assert visits[1].rating is None
        assert visits[1].visit_count is None

    def test_unknown_user_has_no_visits(self):
        assert _visits().find_by_user_id(99) == []

    def test_find_by_restaurant_ids(self):
        visits = _visits().find_by_restaurant_ids([10])
        assert sorted(v.user_id for v in visits) == [1, 2]
        assert _visits().find_by_restaurant_ids([]) == []

    def test_common_visited_restaurants_returns_first_users_rows(self):
        common = _visits().find_common_visited_restaurants(1, 2)
        assert [(v.user_id, v.restaurant_id) for v in common] == [(1, 10)]

    def test_counts(self):
        repo = _visits()
        assert repo.get_visit_count(1) == 2
        assert repo.get_visited_restaurants_count(1) == 2
        assert repo.get_visit_count(99) == 0

    def test_date_range(self):
        recent = _visits().find_by_user_id_and_date_range(1, NOW - timedelta(days=30))
        assert [v.restaurant_id for v in recent] == [10]

    def test_active_users_most_recent_first(self):
        assert _visits().get_active_user_ids(30, now=NOW) == [1, 2]
        assert _visits().get_all_user_ids() == [1, 2, 3]

    def test_unrecognised_visit_type_loads_as_unknown(self):
        repo = VisitRepository.from_records([
            {"user_id": 1, "restaurant_id": 10, "visit_type": "bookmark", "rating": 4.0},
        ])
        assert repo.find_by_user_id(1)[0].visit_type is VisitType.UNKNOWN


class TestFollowRepository:
    def _follows(self):
        return FollowRepository.from_records([(1, 2), (1, 3), (2, 3), (3, 1), (1, 1), (1, 2)])

    def test_self_loops_and_duplicates_dropped(self):
        repo = self._follows()
        assert repo.get_following_ids(1) == [2, 3]
        assert not repo.is_following(1, 1)

    def test_directed_edges(self):
        repo = self._follows()
        assert repo.is_following(1, 2)
        assert not repo.is_following(2, 1)

    def test_counts_and_followers(self):
        repo = self._follows()
        assert repo.get_following_count(1) == 2
        assert repo.get_followers_count(3) == 2
        assert sorted(repo.get_follower_ids(3)) == [1, 2]

    def test_mutual_following(self):
        assert self._follows().get_mutual_following_ids(1, 2) == [3]


class TestDirectories:
    def test_user_directory(self):
        users = UserDirectory.from_records([{"id": 1, "display_name": "Maya", "avatar_url": None}])
        assert users.get_user(1).display_name == "Maya"
        assert users.get_user(1).avatar_url is None
        assert users.display_name(42) == "Unknown user"

    def test_restaurant_directory_fallback_name(self):
        restaurants = RestaurantDirectory.from_records([{"id": 5, "name": "Toit", "cuisine": "Pub"}])
        assert restaurants.name(5) == "Toit"
        assert restaurants.cuisine(5) == "Pub"
        assert restaurants.name(6) == "restaurant #6"
        assert restaurants.cuisine(6) is None

    def test_sample_dataset_loads(self):
        dataset = load_dataset(SAMPLE_DATA_DIR, now=NOW)
        assert dataset.visits.get_visit_count(1) > 0
        assert dataset.follows.get_following_ids(1)
        assert dataset.users.display_name(1) == "Maya"
        assert dataset.visits.find_by_user_id(12) == []


class TestSimilarityCacheRepository:
    def _entry(self, a, b, score=0.5, algorithm="cosine", age_days=0):
        return SimilarityEntry(
            user1_id=a, user2_id=b, algorithm_type=algorithm, similarity_score=score,
            common_restaurant_count=2, last_calculated=NOW - timedelta(days=age_days),
        )

    def test_lookup_tries_both_orderings(self):
        repo = SimilarityCacheRepository()
        repo.upsert(self._entry(5, 2, 0.8))
        assert repo.find_by_user_pair_and_algorithm(2, 5, "cosine").similarity_score == 0.8
        assert repo.find_by_user_pair_and_algorithm(5, 2, "cosine").similarity_score == 0.8
        assert repo.find_by_user_pair_and_algorithm(2, 5, "pearson") is None

    def test_stored_with_smaller_id_first(self):
        repo = SimilarityCacheRepository()
        stored = repo.upsert(self._entry(9, 3))
        assert (stored.user1_id, stored.user2_id) == (3, 9)

    def test_upsert_overwrites(self):
        repo = SimilarityCacheRepository()
        repo.upsert(self._entry(1, 2, 0.1))
        repo.upsert(self._entry(2, 1, 0.9))
        assert len(repo) == 1
        assert repo.find_by_user_pair_and_algorithm(1, 2, "cosine").similarity_score == 0.9

    def test_batch_delete_and_stats(self):
        repo = SimilarityCacheRepository()
        assert repo.insert_batch([
            self._entry(1, 2, 0.4), self._entry(1, 3, 0.8), self._entry(1, 4, 0.6, age_days=10),
        ]) == 3
        stats = repo.get_similarity_stats(1)
        assert stats.total_count == 3
        assert stats.avg_similarity == pytest.approx(0.6)
        assert stats.max_similarity == 0.8
        assert repo.delete_older_than(7, now=NOW) == 1
        assert repo.count_by_user(1) == 2
        assert repo.get_similarity_stats(99).total_count == 0


class TestRecommendationRepository:
    def test_insert_and_find_by_triple(self):
        repo = RecommendationRepository()
        record = repo.insert(1, 2, "hybrid_weighted", 0.7, "because")
        found = repo.find_by_user_and_recommended_user_and_algorithm(1, 2, "hybrid_weighted")
        assert found.id == record.id
        assert repo.find_by_user_and_recommended_user_and_algorithm(1, 2, "social") is None

    def test_ids_are_unique(self):
        repo = RecommendationRepository()
        ids = {repo.insert(1, other, "social", 0.5, "").id for other in range(2, 7)}
        assert len(ids) == 5

    def test_pagination_newest_first(self):
        repo = RecommendationRepository()
        for days, other in ((3, 2), (1, 3), (2, 4)):
            repo.insert(1, other, "social", 0.5, "", created_at=NOW - timedelta(days=days))
        page = repo.find_by_user_paginated(1, 0, 2)
        assert [r.recommended_user_id for r in page] == [3, 4]
        assert [r.recommended_user_id for r in repo.find_by_user_paginated(1, 2, 2)] == [2]

    def test_viewed_and_interested_counts(self):
        repo = RecommendationRepository()
        first = repo.insert(1, 2, "social", 0.5, "")
        repo.insert(1, 3, "social", 0.5, "")
        repo.update(first.model_copy(update={"is_viewed": True, "is_interested": True}))
        assert repo.count_by_user(1) == 2
        assert repo.count_by_user_and_viewed(1, True) == 1
        assert repo.count_by_user_and_interested(1, True) == 1
        assert [r.recommended_user_id for r in repo.find_unviewed_by_user(1, 10)] == [3]

    def test_batch_mark_viewed_skips_missing(self):
        repo = RecommendationRepository()
        record = repo.insert(1, 2, "social", 0.5, "")
        assert repo.batch_mark_viewed([record.id, 999]) == 1
        assert repo.get(record.id).is_viewed

    def test_update_unknown_record_raises(self):
        repo = RecommendationRepository()
        record = repo.insert(1, 2, "social", 0.5, "")
        repo.delete(record.id)
        with pytest.raises(KeyError):
            repo.update(record)

    def test_delete_older_than_and_recent_ids(self):
        repo = RecommendationRepository()
        repo.insert(1, 2, "social", 0.5, "", created_at=NOW - timedelta(days=40))
        repo.insert(1, 3, "social", 0.5, "", created_at=NOW - timedelta(days=2))
        repo.insert(1, 3, "collaborative", 0.5, "", created_at=NOW - timedelta(days=1))
        assert repo.get_recommended_user_ids(1, 7, now=NOW) == [3]
        assert repo.delete_older_than(30, now=NOW) == 1
        assert repo.count_by_user(1) == 2

    def test_algorithm_stats(self):
        repo = RecommendationRepository()
        repo.insert(1, 2, "social", 0.4, "")
        repo.insert(1, 3, "social", 0.6, "")
        repo.insert(1, 4, "collaborative", 0.9, "")
        repo.insert(2, 1, "collaborative", 0.1, "")
        stats = repo.get_algorithm_stats_by_user(1)
        assert [s.algorithm_type for s in stats] == ["social", "collaborative"]
        assert stats[0].avg_score == pytest.approx(0.5)
        global_stats = {s.algorithm_type: s.total_count for s in repo.get_global_algorithm_stats(30)}
        assert global_stats == {"social": 2, "collaborative": 2}

    def test_delete_by_user(self):
        repo = RecommendationRepository()
        repo.insert(1, 2, "social", 0.4, "")
        repo.insert(2, 1, "social", 0.4, "")
        assert repo.delete_by_user(1) == 1
        assert len(repo) == 1
