"""
Authentication dependencies for FastAPI routes.

The signed-in user id lives in the Starlette cookie session under
``user_id``. Team access and the subscription gate are async helpers the
routes call after loading the entity they are about to change, so a missing
entity is a 404 before it is a 403.
"""

from fastapi import Depends, HTTPException, Request, status
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from teamstats.services import user_service
from teamstats.services.access_service import has_access_to_team
from teamstats.services.subscription_service import is_team_subscription_active
from teamstats.database.db import get_db_session

SESSION_USER_KEY = "user_id"


def login_user(request: Request, user_id: int) -> None:
    """Store the user in the cookie session."""
    request.session[SESSION_USER_KEY] = user_id


def logout_user(request: Request) -> None:
    request.session.clear()


async def get_current_user(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> dict:
    """
    Dependency to get the current authenticated user from the cookie session.

    Args:
        request: Incoming request (carries the session)
        session: Database session

    Returns:
        User dictionary

    Raises:
        HTTPException: 401 if there is no session or the user no longer exists
    """
    user_id = request.session.get(SESSION_USER_KEY)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    return user


async def get_current_user_optional(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> Optional[dict]:
    """
    Optional dependency to get the current authenticated user.
    Returns None if there is no session or the user no longer exists.
    """
    try:
        return await get_current_user(request, session)
    except HTTPException:
        return None


async def require_team_access(session: AsyncSession, user: Optional[dict], team_id: int) -> None:
    """
    Verify the user administers the team.

    Raises:
        HTTPException 401 without a user, 403 without membership.
    """
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    if not await has_access_to_team(session, user, team_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized")


async def require_active_subscription(session: AsyncSession, team_id: int) -> None:
    """
    Verify the team's subscription enables paid features.

    Raises:
        HTTPException 402 when the gate is closed.
    """
    if not await is_team_subscription_active(session, team_id):
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail="Subscription required",
        )


def not_found(entity: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{entity} not found")
