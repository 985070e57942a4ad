"""Profile router: view and edit the signed-in user's profile."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from bagelfunds.auth.dependencies import get_current_user
from bagelfunds.auth.router import clear_session_cookie
from bagelfunds.database import get_session
from bagelfunds.db.models import User
from bagelfunds.flash import flash_redirect
from bagelfunds.users.schemas import ProfilePageResponse, ProfileUpdateRequest, UserResponse
from bagelfunds.users.service import update_profile

logger = structlog.get_logger()

router = APIRouter(tags=["Users"])


@router.get("/profile", response_model=ProfilePageResponse)
async def get_profile(
    user: User = Depends(get_current_user),
) -> ProfilePageResponse:
    """Own profile."""
    return ProfilePageResponse(user=UserResponse.model_validate(user))


@router.put("/profile/{user_id}")
async def edit_profile(
    user_id: str,
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> RedirectResponse:
    """Edit own profile. Targeting anyone else ends the session."""
    if user_id != str(user.id):
        logger.warning("profile_edit_denied", user_id=user.id, target_id=user_id)
        response = flash_redirect("/")
        clear_session_cookie(response)
        return response

    await update_profile(db, user, phone=body.phone, twitter=body.twitter, image=body.image)
    await db.commit()
    return flash_redirect("/profile", success="profile_updated")
