"""
Signed session tokens carried in the session cookie.

The cookie holds an HS256 JWT rather than the raw user id, so a client cannot
impersonate another user by editing it, and the session expires on its own.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from bagelfunds.config import get_settings

TOKEN_TYPE = "session"


def create_session_token(user_id: int, *, now: datetime | None = None) -> str:
    """
    Create a session token for a signed-in user.

    Args:
        user_id: The user's database ID (becomes the ``sub`` claim).
        now: Issue time, defaults to the current UTC time.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    issued_at = now or datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.session_expire_minutes),
        "iss": settings.jwt_issuer,
        "type": TOKEN_TYPE,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_session_token(token: str) -> int:
    """
    Verify a session token and return the user id it was issued for.

    Raises:
        jwt.InvalidTokenError: If the token is malformed, tampered with,
            expired, from another issuer, or not a session token.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        msg = "Session has expired"
        raise jwt.InvalidTokenError(msg) from None

    if payload.get("type") != TOKEN_TYPE:
        msg = f"Expected token type '{TOKEN_TYPE}', got '{payload.get('type')}'"
        raise jwt.InvalidTokenError(msg)

    try:
        return int(payload["sub"])
    except (KeyError, ValueError) as e:
        msg = "Session token has no valid subject"
        raise jwt.InvalidTokenError(msg) from e
