"""Authentication route handlers."""

import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from teamstats.api.routes import limiter, INVALID_CREDENTIALS_RESPONSE
from teamstats.api.routes.invites import complete_pending_invites
from teamstats.database.db import get_db_session
from teamstats.services import auth_service, user_service, data_service
from teamstats.api.auth_dependencies import get_current_user, login_user, logout_user
from teamstats.models.schemas import SignupRequest, LoginRequest, MeResponse, UserResponse
from teamstats.utils.constants import GUEST_ALERT_COOKIE_MAX_AGE

logger = logging.getLogger(__name__)
router = APIRouter()

GUEST_ALERT_COOKIE = "guest_user_alert_dismissed"


@router.post("/api/auth/signup")
@limiter.limit("10/minute")
async def signup(
    request: Request, payload: SignupRequest, session: AsyncSession = Depends(get_db_session)
):
    """
    Create an account and log it in.

    A pending invite or invite request from before signup is completed.
    """
    try:
        email = auth_service.normalize_email(payload.email)
        if await user_service.get_user_by_email(session, email):
            raise HTTPException(status_code=400, detail="Email is already registered")
        password_hash = auth_service.hash_password(payload.password)
        user_id = await user_service.create_user(session, payload.name, email, password_hash)
        user = await user_service.get_user_by_id(session, user_id)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    login_user(request, user_id)
    pending = await complete_pending_invites(request, session, user)
    return {"user": user_service.public_user(user), **pending}


@router.post("/api/auth/login")
@limiter.limit("10/minute")
async def login(
    request: Request, payload: LoginRequest, session: AsyncSession = Depends(get_db_session)
):
    """Login with email and password."""
    try:
        email = auth_service.normalize_email(payload.email)
    except ValueError:
        raise INVALID_CREDENTIALS_RESPONSE

    user = await user_service.get_user_by_email(session, email)
    if not user or not auth_service.verify_password(payload.password, user["password_hash"]):
        raise INVALID_CREDENTIALS_RESPONSE

    login_user(request, user["id"])
    pending = await complete_pending_invites(request, session, user)
    return {"user": user_service.public_user(user), **pending}


@router.post("/api/auth/logout")
async def logout(request: Request):
    """Clear the session."""
    logout_user(request)
    return {"status": "success", "message": "Logged out successfully"}


@router.get("/api/auth/me", response_model=MeResponse)
async def get_current_user_info(
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get current authenticated user information and the teams they administer."""
    teams = await data_service.get_user_teams(session, current_user["id"])
    return MeResponse(user=UserResponse(**user_service.public_user(current_user)), teams=teams)


@router.post("/api/dismiss-guest-user-alert")
async def dismiss_guest_user_alert(response: Response):
    """Hide the "you are viewing as a guest" alert for a few minutes."""
    response.set_cookie(
        GUEST_ALERT_COOKIE,
        "true",
        max_age=GUEST_ALERT_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
        secure=os.getenv("ENV", "").lower() == "production",
    )
    return {"dismissed": True}
