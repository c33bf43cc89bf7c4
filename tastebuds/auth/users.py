from __future__ import annotations

from typing import Any

import bcrypt

USER_ROLE = "user"
ADMIN_ROLE = "admin"

_accounts: dict[str, dict[str, Any]] = {}


def _hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def _verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode(), hashed.encode())


def register_account(username: str, password: str, user_id: int, role: str = USER_ROLE) -> None:
    """Add or replace a login bound to a platform ``user_id``."""
    _accounts[username] = {
        "password_hash": _hash_password(password),
        "user_id": user_id,
        "role": role,
    }


def _seed_accounts() -> None:
    """Demo logins for the sample dataset."""
    register_account("user", "user123", user_id=1)
    register_account("admin", "admin123", user_id=2, role=ADMIN_ROLE)
    # No visits and no follows in the sample data
    register_account("newbie", "newbie123", user_id=12)


def authenticate(username: str, password: str) -> dict[str, Any] | None:
    """Verify credentials. Returns ``{username, user_id, role}`` or ``None``."""
    record = _accounts.get(username)
    if record and _verify_password(password, record["password_hash"]):
        return {"username": username, "user_id": record["user_id"], "role": record["role"]}
    return None


_seed_accounts()
