from __future__ import annotations

from fastapi import HTTPException, Request

from .users import ADMIN_ROLE


def require_user(request: Request) -> dict:
    """Session account of the caller; 401 when nobody is logged in."""
    account = request.session.get("user")
    if not account:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return account


def require_user_id(request: Request) -> int:
    """Platform user id bound to the logged-in account."""
    return int(require_user(request)["user_id"])


def require_admin(request: Request) -> dict:
    account = require_user(request)
    if account.get("role") != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin access required")
    return account
