from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from tastebuds.app import app, get_service, reset_service

client = TestClient(app)


@pytest.fixture(autouse=True)
def fresh_service():
    reset_service()
    yield
    reset_service()


def _login(c, username="user", password="user123"):
    c.post("/auth/login", json={"username": username, "password": password})


def _login_admin(c):
    _login(c, "admin", "admin123")


def _served_ids():
    _login(client)
    client.get("/user-recommendations")
    return [r["id"] for r in client.get("/user-recommendations/paginated", params={"size": 20}).json()]


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_requires_login():
    client.post("/auth/logout")
    assert client.get("/user-recommendations").status_code == 401


def test_recommendations_returns_results():
    _login(client)
    resp = client.get("/user-recommendations")
    assert resp.status_code == 200
    body = resp.json()
    assert body["strategy"] == "WEIGHTED"
    assert body["total"] == len(body["recommendations"]) > 0
    ids = [r["user_id"] for r in body["recommendations"]]
    assert 1 not in ids
    assert len(ids) == len(set(ids))


def test_recommendations_respects_limit():
    _login(client)
    body = client.get("/user-recommendations", params={"limit": 3}).json()
    assert len(body["recommendations"]) <= 3


def test_recommendations_sorted_by_score():
    _login(client)
    recs = client.get("/user-recommendations").json()["recommendations"]
    scores = [r["score"] for r in recs]
    assert scores == sorted(scores, reverse=True)
    assert all(0.0 <= s <= 1.0 for s in scores)
    assert all(r["reason"] for r in recs)


@pytest.mark.parametrize("limit", [0, 51])
def test_invalid_limit(limit):
    _login(client)
    resp = client.get("/user-recommendations", params={"limit": limit})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_LIMIT"


def test_each_strategy_labels_results():
    _login(client)
    labels = {}
    for algorithm in ("WEIGHTED", "SWITCHING", "CASCADING"):
        body = client.get("/user-recommendations", params={"algorithm": algorithm}).json()
        assert body["strategy"] == algorithm
        labels[algorithm] = {r["algorithm_type"] for r in body["recommendations"]}
    assert labels["WEIGHTED"] == {"hybrid_weighted"}
    assert labels["CASCADING"] == {"hybrid_cascading"}


def test_unknown_algorithm_uses_weighted():
    _login(client)
    body = client.get("/user-recommendations", params={"algorithm": "bogus"}).json()
    assert body["strategy"] == "WEIGHTED"


def test_new_user_gets_popular_users():
    _login(client, "newbie", "newbie123")
    body = client.get("/user-recommendations", params={"algorithm": "SWITCHING"}).json()
    recs = body["recommendations"]
    assert recs
    assert {r["algorithm_type"] for r in recs} == {"popular_fallback"}
    assert 12 not in [r["user_id"] for r in recs]


def test_diversify_flag():
    _login(client)
    plain = client.get("/user-recommendations", params={"limit": 20}).json()
    body = client.get("/user-recommendations", params={"limit": 20, "diversify": True}).json()
    assert plain["total"] > 1
    assert body["total"] == min(plain["total"], 10)
    assert body["recommendations"] == plain["recommendations"][: body["total"]]


def test_served_results_are_stored():
    ids = _served_ids()
    assert ids
    stats = client.get("/user-recommendations/stats").json()
    assert stats["total_recommendations"] == len(ids)
    assert stats["click_through_rate"] == 0.0


def test_paginated_validation():
    _login(client)
    resp = client.get("/user-recommendations/paginated", params={"size": 21})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_PAGINATION"


def test_detail_status_and_delete():
    rec_id = _served_ids()[0]
    resp = client.get(f"/user-recommendations/{rec_id}")
    assert resp.status_code == 200
    assert resp.json()["user_id"] == 1

    resp = client.put(
        f"/user-recommendations/{rec_id}/status",
        json={"is_interested": True, "feedback": "good call"},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["is_viewed"] is True
    assert body["is_interested"] is True

    stats = client.get("/user-recommendations/stats").json()
    assert stats["viewed_count"] == 1
    assert stats["conversion_rate"] == 1.0

    assert client.delete(f"/user-recommendations/{rec_id}").json() == {"status": "deleted"}
    resp = client.get(f"/user-recommendations/{rec_id}")
    assert resp.status_code == 404
    assert resp.json()["code"] == "RECOMMENDATION_NOT_FOUND"


def test_other_users_record_is_forbidden():
    rec_id = _served_ids()[0]
    _login_admin(client)
    resp = client.put(f"/user-recommendations/{rec_id}/status", json={"is_interested": False})
    assert resp.status_code == 403
    assert resp.json()["code"] == "PERMISSION_DENIED"


def test_batch_viewed_and_unviewed():
    ids = _served_ids()
    resp = client.put("/user-recommendations/batch-viewed", json={"recommendation_ids": ids})
    assert resp.json() == {"status": "ok", "updated": len(ids)}
    assert client.get("/user-recommendations/unviewed").json() == []


def test_batch_viewed_rejects_empty_list():
    _login(client)
    resp = client.put("/user-recommendations/batch-viewed", json={"recommendation_ids": []})
    assert resp.status_code == 422


def test_algorithm_stats_and_recent_users():
    ids = _served_ids()
    stats = client.get("/user-recommendations/algorithm-stats").json()
    assert stats[0]["algorithm_type"] == "hybrid_weighted"
    assert stats[0]["total_count"] == len(ids)
    recent = client.get("/user-recommendations/recent-users", params={"days": 7}).json()
    assert len(recent["user_ids"]) == len(ids)
    assert client.get("/user-recommendations/recent-users", params={"days": 91}).status_code == 400


def test_clear():
    ids = _served_ids()
    assert client.delete("/user-recommendations/clear").json() == {"status": "ok", "deleted": len(ids)}
    assert client.get("/user-recommendations/paginated").json() == []


def test_warmup_cache():
    _login(client)
    body = client.post("/user-recommendations/warmup-cache").json()
    assert set(body["warmed"]) == {"WEIGHTED", "SWITCHING", "CASCADING"}


def test_global_algorithm_stats_admin_only():
    _served_ids()
    assert client.get("/user-recommendations/global-algorithm-stats").status_code == 403
    _login_admin(client)
    resp = client.get("/user-recommendations/global-algorithm-stats", params={"days": 30})
    assert resp.status_code == 200
    assert resp.json()[0]["algorithm_type"] == "hybrid_weighted"
    resp = client.get("/user-recommendations/global-algorithm-stats", params={"days": 400})
    assert resp.status_code == 400
    assert resp.json()["code"] == "INVALID_DAYS"


def test_cleanup_expired():
    service = get_service()
    service.records.insert(1, 5, "hybrid_weighted", 0.4, "", created_at=datetime.now() - timedelta(days=90))
    _login_admin(client)
    assert client.delete("/user-recommendations/cleanup-expired").json() == {"status": "ok", "deleted": 1}
