"""Schedule import route handlers."""

import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from teamstats.api.auth_dependencies import (
    get_current_user,
    not_found,
    require_active_subscription,
    require_team_access,
)
from teamstats.api.routes import limiter
from teamstats.database.db import get_db_session
from teamstats.models.schemas import ConfirmScheduleRequest, ImportScheduleRequest
from teamstats.services import data_service, llm_service

logger = logging.getLogger(__name__)
router = APIRouter()


async def _require_schedule_team(session: AsyncSession, user: dict, team_id: int) -> dict:
    team = await data_service.get_team(session, team_id)
    if team is None:
        raise not_found("Team")
    await require_team_access(session, user, team_id)
    await require_active_subscription(session, team_id)
    return team


@router.post("/api/import-schedule")
@limiter.limit("10/minute")
async def import_schedule(
    request: Request,
    payload: ImportScheduleRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Read a league schedule page and propose the team's games.

    Nothing is saved until the admin confirms via /api/import-schedule/confirm.
    """
    await _require_schedule_team(session, user, payload.team_id)
    try:
        html = await llm_service.fetch_schedule_html(payload.schedule_url)
    except httpx.HTTPError as e:
        logger.error(f"Error fetching schedule {payload.schedule_url}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error fetching schedule: {str(e)}")

    try:
        games = await llm_service.parse_schedule_html(html, payload.team_name)
    except (llm_service.LLMServiceError, ValueError) as e:
        logger.error(f"Error parsing schedule for team {payload.team_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error parsing schedule: {str(e)}")
    return {"games": games}


@router.post("/api/import-schedule/confirm")
async def confirm_schedule(
    payload: ConfirmScheduleRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Save the reviewed games."""
    await _require_schedule_team(session, user, payload.team_id)
    games = await data_service.create_games(
        session, payload.team_id, [g.model_dump() for g in payload.games]
    )
    return {"games": games}
