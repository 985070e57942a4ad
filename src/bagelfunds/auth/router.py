"""Authentication router: signup, login and logout."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from bagelfunds.auth.jwt import create_session_token
from bagelfunds.auth.schemas import LoginRequest, PageResponse, SignupRequest, SignupResponse, UserResponse
from bagelfunds.auth.service import authenticate_user, register_user
from bagelfunds.config import get_settings
from bagelfunds.database import get_session
from bagelfunds.dependencies import get_redis_dep
from bagelfunds.flash import RuleViolation, flash_redirect

logger = structlog.get_logger()

router = APIRouter(tags=["Authentication"])


def set_session_cookie(response: RedirectResponse, user_id: int) -> None:
    """Attach a freshly signed session cookie to a response."""
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=create_session_token(user_id),
        max_age=settings.session_expire_minutes * 60,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )


def clear_session_cookie(response: RedirectResponse) -> None:
    """Drop the session cookie."""
    response.delete_cookie(get_settings().session_cookie_name)


@router.get("/login", response_model=PageResponse)
async def login_page() -> PageResponse:
    """The login form."""
    return PageResponse(page="login")


@router.post("/signup", response_model=SignupResponse, status_code=201)
async def signup(
    body: SignupRequest,
    db: AsyncSession = Depends(get_session),
):
    """Create an account. Duplicates bounce back to the landing page."""
    try:
        user = await register_user(db, body.username, body.email, body.password)
        await db.commit()
    except RuleViolation as e:
        return flash_redirect("/", error=e.code)

    return SignupResponse(message="Signup successful", user=UserResponse.model_validate(user))


@router.post("/login")
async def login(
    body: LoginRequest,
    redis: Redis = Depends(get_redis_dep),
    db: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """Check credentials and start a session."""
    try:
        user = await authenticate_user(db, redis, body.username, body.password)
        await db.commit()
    except RuleViolation as e:
        return flash_redirect("/login", error=e.code)

    logger.info("user_logged_in", user_id=user.id)
    response = flash_redirect("/")
    set_session_cookie(response, user.id)
    return response


@router.get("/logout")
async def logout() -> RedirectResponse:
    """End the session."""
    response = flash_redirect("/")
    clear_session_cookie(response)
    return response
