"""Season route handlers."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamstats.api.auth_dependencies import (
    get_current_user,
    not_found,
    require_active_subscription,
    require_team_access,
)
from teamstats.database.db import get_db_session
from teamstats.models.schemas import CreateSeasonRequest, SeasonRequest
from teamstats.services import data_service

logger = logging.getLogger(__name__)
router = APIRouter()


async def _season_or_404(session: AsyncSession, season_id: int) -> dict:
    season = await data_service.get_season(session, season_id)
    if season is None:
        raise not_found("Season")
    return season


@router.post("/api/seasons")
async def create_season(
    payload: CreateSeasonRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a named date range for filtering stats and games."""
    if await data_service.get_team(session, payload.team_id) is None:
        raise not_found("Team")
    await require_team_access(session, user, payload.team_id)
    await require_active_subscription(session, payload.team_id)
    return await data_service.create_season(
        session, payload.team_id, payload.name, payload.start_date, payload.end_date
    )


@router.put("/api/seasons/{season_id}")
async def update_season(
    season_id: int,
    payload: SeasonRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    season = await _season_or_404(session, season_id)
    await require_team_access(session, user, season["team_id"])
    await require_active_subscription(session, season["team_id"])
    return await data_service.update_season(
        session, season_id, payload.name, payload.start_date, payload.end_date
    )


@router.delete("/api/seasons/{season_id}")
async def delete_season(
    season_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    season = await _season_or_404(session, season_id)
    await require_team_access(session, user, season["team_id"])
    await data_service.delete_season(session, season_id)
    return {"success": True}
