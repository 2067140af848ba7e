"""Team route handlers: creation, team pages, settings and roster."""

import asyncio
import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from teamstats.api.auth_dependencies import (
    get_current_user,
    get_current_user_optional,
    not_found,
    require_team_access,
)
from teamstats.database.db import get_db_session
from teamstats.models.schemas import (
    CheckSlugResponse,
    CreatePlayerRequest,
    CreateTeamRequest,
    UpdateTeamColorRequest,
)
from teamstats.services import billing_service, data_service, email_service, storage_service
from teamstats.services.data_service import ConflictError
from teamstats.services.task_runner import get_task_runner

logger = logging.getLogger(__name__)
router = APIRouter()


async def _team_or_404(session: AsyncSession, team_id: int) -> dict:
    team = await data_service.get_team(session, team_id)
    if team is None:
        raise not_found("Team")
    return team


@router.get("/api/check-slug", response_model=CheckSlugResponse)
async def check_slug(slug: Optional[str] = None, session: AsyncSession = Depends(get_db_session)):
    """Whether a team URL slug is still free."""
    return CheckSlugResponse(slug_is_available=await data_service.slug_available(session, slug))


@router.post("/api/teams")
async def create_team(
    payload: CreateTeamRequest,
    request: Request,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a team with the caller as admin, then send them to Stripe checkout.
    """
    if payload.plan not in billing_service.SUPPORTED_PLANS:
        raise HTTPException(status_code=400, detail=f"Invalid plan: {payload.plan}")

    try:
        team = await data_service.create_team(session, payload.name, payload.slug, user["id"])
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    origin = request.headers.get("origin") or os.getenv("BASE_URL", "http://localhost:8000")
    try:
        checkout_url = await billing_service.create_checkout_session(
            team_id=team["id"],
            team_name=team["name"],
            plan=payload.plan,
            origin=origin,
            customer_id=user.get("stripe_customer_id"),
        )
    except Exception as e:
        logger.error(f"Error creating checkout session for team {team['id']}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating checkout session: {str(e)}")

    return RedirectResponse(checkout_url, status_code=303)


@router.get("/api/teams/{slug}")
async def get_team_page(
    slug: str,
    season_id: Optional[int] = None,
    edit: bool = False,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Standings, golden boot and the per-day stat table for a team (public)."""
    try:
        page = await data_service.get_team_stats_page(
            session, slug, user=user, season_id=season_id, edit=edit
        )
    except LookupError:
        raise not_found("Season")
    if page is None:
        raise not_found("Team")
    return page


@router.get("/api/teams/{slug}/games")
async def get_team_games(
    slug: str,
    season_id: Optional[int] = None,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """Past, next and upcoming games with RSVP tallies and stat counts (public)."""
    try:
        page = await data_service.get_team_games_page(session, slug, user=user, season_id=season_id)
    except LookupError:
        raise not_found("Season")
    if page is None:
        raise not_found("Team")
    return page


@router.get("/api/teams/{slug}/seasons")
async def get_team_seasons(slug: str, session: AsyncSession = Depends(get_db_session)):
    team = await data_service.get_team_by_slug(session, slug)
    if team is None:
        raise not_found("Team")
    return await data_service.list_seasons(session, team["id"])


@router.get("/api/teams/{slug}/players")
async def get_team_roster(
    slug: str,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Roster with invite state (team admins only)."""
    team = await data_service.get_team_by_slug(session, slug)
    if team is None:
        raise not_found("Team")
    await require_team_access(session, user, team["id"])
    return {"team": team, "players": await data_service.get_team_roster(session, team["id"])}


@router.get("/api/teams/{slug}/stats")
async def get_team_stats(slug: str, session: AsyncSession = Depends(get_db_session)):
    """Every stat entry for the team with player names."""
    team = await data_service.get_team_by_slug(session, slug)
    if team is None:
        raise not_found("Team")
    return await data_service.list_team_stats(session, team["id"])


@router.patch("/api/teams/{team_id}/color")
async def update_team_color(
    team_id: int,
    payload: UpdateTeamColorRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await _team_or_404(session, team_id)
    await require_team_access(session, user, team_id)
    return await data_service.update_team_color(session, team_id, payload.color.value)


@router.post("/api/teams/{team_id}/logo")
async def upload_team_logo(
    team_id: int,
    file: UploadFile = File(...),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Replace the team logo."""
    team = await _team_or_404(session, team_id)
    await require_team_access(session, user, team_id)

    data = await file.read()
    try:
        url = await asyncio.to_thread(
            storage_service.upload_team_logo,
            team_id,
            data,
            file.content_type or "application/octet-stream",
        )
    except Exception as e:
        logger.error(f"Error uploading logo for team {team_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error uploading logo: {str(e)}")
    return {"url": url, "team": team}


@router.delete("/api/teams/{team_id}/logo", status_code=204)
async def delete_team_logo(
    team_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await _team_or_404(session, team_id)
    await require_team_access(session, user, team_id)
    try:
        await asyncio.to_thread(storage_service.delete_team_logo, team_id)
    except Exception as e:
        logger.error(f"Error deleting logo for team {team_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting logo: {str(e)}")
    return Response(status_code=204)


@router.post("/api/teams/{team_id}/players")
async def create_player(
    team_id: int,
    payload: CreatePlayerRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Add a player; with an email, also invite that person to claim the player."""
    team = await _team_or_404(session, team_id)
    await require_team_access(session, user, team_id)

    try:
        result = await data_service.create_player(
            session, team_id, payload.name, email=payload.email, inviter_id=user["id"]
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    invite = result["invite"]
    if invite is not None:
        get_task_runner().submit(
            email_service.send_invite_email,
            invite["email"],
            user["name"],
            team["name"],
            invite["id"],
            invite["token"],
        )
        result["invite"] = data_service.public_invite(invite)
    return result
