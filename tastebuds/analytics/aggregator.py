from __future__ import annotations

from collections import Counter
from typing import Any


def compute_analytics(events: list[dict[str, Any]], slow_threshold_ms: float = 1000) -> dict[str, Any]:
    requests = [e for e in events if e["type"] == "recommendation"]
    total = len(requests)

    # Average response time
    times = [r["response_time_ms"] for r in requests if "response_time_ms" in r]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    # Strategy usage
    strategy_counter: Counter[str] = Counter()
    for r in requests:
        strategy_counter[r.get("strategy", "unknown")] += 1

    # Users served most often
    user_counter: Counter[int] = Counter()
    for r in requests:
        if "user_id" in r:
            user_counter[r["user_id"]] += 1
    top_users = [{"user_id": u, "count": c} for u, c in user_counter.most_common(10)]

    empty_results = sum(1 for r in requests if r.get("results_returned", 0) == 0)

    # Cache stats
    cache_hits = sum(1 for r in requests if r.get("cache_hit"))
    cache_misses = total - cache_hits

    return {
        "total_requests": total,
        "avg_response_time_ms": avg_time,
        "strategy_usage": dict(strategy_counter),
        "top_users": top_users,
        "empty_result_count": empty_results,
        "timeout_count": sum(1 for r in requests if r.get("timed_out")),
        "slow_request_count": sum(1 for t in times if t > slow_threshold_ms),
        "cache_stats": {
            "hits": cache_hits,
            "misses": cache_misses,
            "hit_rate": round(cache_hits / total * 100, 1) if total else 0.0,
        },
    }
