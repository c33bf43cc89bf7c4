from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

import pandas as pd

from .models import FollowEdge, UserProfile, Visit, VisitType

SAMPLE_DATA_DIR = Path(__file__).resolve().parent.parent / "data" / "sample"

_VISIT_COLUMNS = [
    "user_id",
    "restaurant_id",
    "visit_type",
    "rating",
    "visit_count",
    "last_visit_time",
]
_FOLLOW_COLUMNS = ["follower_id", "following_id", "created_at"]
_USER_COLUMNS = ["id", "display_name", "avatar_url"]


def _none_if_na(value):
    return None if pd.isna(value) else value


class VisitRepository:
    """Read-only view over user restaurant visits."""

    def __init__(self, df: pd.DataFrame) -> None:
        df = df.copy()
        for col in _VISIT_COLUMNS:
            if col not in df.columns:
                df[col] = pd.NA
        df["user_id"] = df["user_id"].astype(int)
        df["restaurant_id"] = df["restaurant_id"].astype(int)
        df["visit_type"] = df["visit_type"].astype(str).str.upper()
        df["rating"] = pd.to_numeric(df["rating"], errors="coerce")
        df["visit_count"] = pd.to_numeric(df["visit_count"], errors="coerce")
        df["last_visit_time"] = pd.to_datetime(df["last_visit_time"], errors="coerce")
        # Newest first, matching the order callers expect from the store
        self._df = df[_VISIT_COLUMNS].sort_values(
            "last_visit_time", ascending=False, kind="mergesort", na_position="last"
        ).reset_index(drop=True)

    @classmethod
    def from_records(cls, visits: Iterable[Visit | dict]) -> "VisitRepository":
        rows = [v.model_dump() if isinstance(v, Visit) else dict(v) for v in visits]
        for row in rows:
            if isinstance(row.get("visit_type"), VisitType):
                row["visit_type"] = row["visit_type"].value
        return cls(pd.DataFrame(rows, columns=_VISIT_COLUMNS))

    def _to_visits(self, df: pd.DataFrame) -> list[Visit]:
        visits: list[Visit] = []
        for row in df.itertuples(index=False):
            last_visit = _none_if_na(row.last_visit_time)
            visit_count = _none_if_na(row.visit_count)
            visits.append(Visit(
                user_id=int(row.user_id),
                restaurant_id=int(row.restaurant_id),
                visit_type=VisitType(row.visit_type),
                rating=_none_if_na(row.rating),
                visit_count=int(visit_count) if visit_count is not None else None,
                last_visit_time=last_visit.to_pydatetime() if last_visit is not None else None,
            ))
        return visits

    def find_by_user_id(self, user_id: int) -> list[Visit]:
        return self._to_visits(self._df[self._df["user_id"] == user_id])

    def find_by_restaurant_ids(self, restaurant_ids: Iterable[int]) -> list[Visit]:
        ids = list(restaurant_ids)
        if not ids:
            return []
        return self._to_visits(self._df[self._df["restaurant_id"].isin(ids)])

    def find_common_visited_restaurants(self, user1_id: int, user2_id: int) -> list[Visit]:
        """Return ``user1_id``'s visits at restaurants ``user2_id`` also visited."""
        other = set(self._df.loc[self._df["user_id"] == user2_id, "restaurant_id"])
        mask = (self._df["user_id"] == user1_id) & self._df["restaurant_id"].isin(other)
        return self._to_visits(self._df[mask])

    def find_by_user_id_and_date_range(self, user_id: int, since: datetime) -> list[Visit]:
        mask = (self._df["user_id"] == user_id) & (self._df["last_visit_time"] >= pd.Timestamp(since))
        return self._to_visits(self._df[mask])

    def get_visited_restaurants_count(self, user_id: int) -> int:
        return int(self._df.loc[self._df["user_id"] == user_id, "restaurant_id"].nunique())

    def get_visit_count(self, user_id: int) -> int:
        return int((self._df["user_id"] == user_id).sum())

    def get_active_user_ids(self, days: int, now: datetime | None = None) -> list[int]:
        """Users with at least one visit in the trailing window, most recent first."""
        since = pd.Timestamp((now or datetime.now()) - timedelta(days=days))
        recent = self._df[self._df["last_visit_time"] >= since]
        return [int(uid) for uid in recent["user_id"].drop_duplicates()]

    def get_all_user_ids(self) -> list[int]:
        return sorted(int(uid) for uid in self._df["user_id"].unique())


class FollowRepository:
    """Read-only directed follow graph."""

    def __init__(self, df: pd.DataFrame) -> None:
        df = df.copy()
        for col in _FOLLOW_COLUMNS:
            if col not in df.columns:
                df[col] = pd.NA
        df["follower_id"] = df["follower_id"].astype(int)
        df["following_id"] = df["following_id"].astype(int)
        df["created_at"] = pd.to_datetime(df["created_at"], errors="coerce")
        # No self-loops, one edge per pair
        df = df[df["follower_id"] != df["following_id"]]
        df = df.drop_duplicates(subset=["follower_id", "following_id"], keep="first")
        self._df = df[_FOLLOW_COLUMNS].reset_index(drop=True)

    @classmethod
    def from_records(cls, edges: Iterable[FollowEdge | dict | tuple[int, int]]) -> "FollowRepository":
        rows = []
        for edge in edges:
            if isinstance(edge, FollowEdge):
                rows.append(edge.model_dump())
            elif isinstance(edge, tuple):
                rows.append({"follower_id": edge[0], "following_id": edge[1]})
            else:
                rows.append(dict(edge))
        return cls(pd.DataFrame(rows, columns=_FOLLOW_COLUMNS))

    def is_following(self, follower_id: int, following_id: int) -> bool:
        mask = (self._df["follower_id"] == follower_id) & (self._df["following_id"] == following_id)
        return bool(mask.any())

    def get_following_ids(self, user_id: int) -> list[int]:
        return [int(x) for x in self._df.loc[self._df["follower_id"] == user_id, "following_id"]]

    def get_follower_ids(self, user_id: int) -> list[int]:
        return [int(x) for x in self._df.loc[self._df["following_id"] == user_id, "follower_id"]]

    def get_following_count(self, user_id: int) -> int:
        return int((self._df["follower_id"] == user_id).sum())

    def get_followers_count(self, user_id: int) -> int:
        return int((self._df["following_id"] == user_id).sum())

    def get_mutual_following_ids(self, user1_id: int, user2_id: int) -> list[int]:
        """Users followed by both ``user1_id`` and ``user2_id``."""
        other = set(self.get_following_ids(user2_id))
        return [uid for uid in self.get_following_ids(user1_id) if uid in other]


class UserDirectory:
    def __init__(self, df: pd.DataFrame) -> None:
        df = df.copy()
        for col in _USER_COLUMNS:
            if col not in df.columns:
                df[col] = pd.NA
        df["id"] = df["id"].astype(int)
        self._users = {
            int(row.id): UserProfile(
                id=int(row.id),
                display_name=str(row.display_name) if pd.notna(row.display_name) else f"user{row.id}",
                avatar_url=_none_if_na(row.avatar_url),
            )
            for row in df[_USER_COLUMNS].itertuples(index=False)
        }

    @classmethod
    def from_records(cls, users: Iterable[UserProfile | dict]) -> "UserDirectory":
        rows = [u.model_dump() if isinstance(u, UserProfile) else dict(u) for u in users]
        return cls(pd.DataFrame(rows, columns=_USER_COLUMNS))

    def get_user(self, user_id: int) -> UserProfile | None:
        return self._users.get(user_id)

    def display_name(self, user_id: int) -> str:
        user = self._users.get(user_id)
        return user.display_name if user else "Unknown user"


class RestaurantDirectory:
    """Restaurant names and cuisines used to phrase recommendation reasons."""

    def __init__(self, df: pd.DataFrame | None = None) -> None:
        self._names: dict[int, str] = {}
        self._cuisines: dict[int, str] = {}
        if df is None:
            return
        for row in df.itertuples(index=False):
            restaurant_id = int(row.id)
            self._names[restaurant_id] = str(row.name)
            cuisine = _none_if_na(getattr(row, "cuisine", None))
            if cuisine:
                self._cuisines[restaurant_id] = str(cuisine)

    @classmethod
    def from_records(cls, restaurants: Iterable[dict]) -> "RestaurantDirectory":
        return cls(pd.DataFrame(list(restaurants), columns=["id", "name", "cuisine"]))

    def name(self, restaurant_id: int) -> str:
        return self._names.get(restaurant_id, f"restaurant #{restaurant_id}")

    def cuisine(self, restaurant_id: int) -> str | None:
        return self._cuisines.get(restaurant_id)


@dataclass
class Dataset:
    visits: VisitRepository
    follows: FollowRepository
    users: UserDirectory
    restaurants: RestaurantDirectory


def _load_visits_csv(path: Path, now: datetime | None = None) -> pd.DataFrame:
    df = pd.read_csv(path)
    # Sample data stores visit age relative to load time
    if "days_ago" in df.columns and "last_visit_time" not in df.columns:
        base = pd.Timestamp(now or datetime.now())
        df["last_visit_time"] = base - pd.to_timedelta(df["days_ago"], unit="D")
        df = df.drop(columns=["days_ago"])
    return df


def _load_follows_csv(path: Path, now: datetime | None = None) -> pd.DataFrame:
    df = pd.read_csv(path)
    if "days_ago" in df.columns and "created_at" not in df.columns:
        base = pd.Timestamp(now or datetime.now())
        df["created_at"] = base - pd.to_timedelta(df["days_ago"], unit="D")
        df = df.drop(columns=["days_ago"])
    return df


def load_dataset(data_dir: Path = SAMPLE_DATA_DIR, now: datetime | None = None) -> Dataset:
    """
    Load ``visits.csv``, ``follows.csv`` and ``users.csv`` from ``data_dir``.

    ``restaurants.csv`` is optional; without it reasons fall back to
    ``restaurant #<id>``.
    """
    restaurants_path = data_dir / "restaurants.csv"
    return Dataset(
        visits=VisitRepository(_load_visits_csv(data_dir / "visits.csv", now)),
        follows=FollowRepository(_load_follows_csv(data_dir / "follows.csv", now)),
        users=UserDirectory(pd.read_csv(data_dir / "users.csv")),
        restaurants=RestaurantDirectory(
            pd.read_csv(restaurants_path) if restaurants_path.exists() else None
        ),
    )
