"""Shared FastAPI dependencies."""

from fastapi import Request

from movieclub.core.exceptions import UnauthorizedError
from movieclub.core.logging import bind_user_id
from movieclub.core.security import load_session_cookie

ADMIN_COOKIE_NAME = "movieclub_admin"


async def require_admin(request: Request) -> dict:
    """Dependency: require a valid signed admin session cookie."""
    cookie = request.cookies.get(ADMIN_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload or payload.get("role") != "admin":
        raise UnauthorizedError("Invalid or expired session")
    return payload


def acting_user(user_id: str) -> str:
    """Bind the caller's id to the request's log context and hand it back."""
    bind_user_id(user_id)
    return user_id
