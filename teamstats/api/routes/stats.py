"""Stat entry route handlers: bulk entry, corrections and free text parsing."""

import logging
from typing import Iterable, List

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
from teamstats.models.schemas import ParsedStat, ParseStatsRequest, StatEntryRequest, UpdateStatRequest
from teamstats.services import data_service, llm_service
from teamstats.services.access_service import accessible_player_teams

logger = logging.getLogger(__name__)
router = APIRouter()


async def _require_player_teams(session: AsyncSession, user: dict, player_ids: Iterable[int]) -> dict:
    """
    Map player ids to team ids, requiring access to every one of them
    and an active subscription on every team involved.
    """
    ids = set(player_ids)
    player_teams = await accessible_player_teams(session, user, ids)
    if len(player_teams) != len(ids):
        raise HTTPException(status_code=403, detail="Not authorized")
    for team_id in sorted(set(player_teams.values())):
        await require_active_subscription(session, team_id)
    return player_teams


@router.post("/api/stats")
async def create_stats(
    payload: List[StatEntryRequest],
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Save a batch of stat entries, usually ones confirmed after parsing."""
    if not payload:
        return []
    player_teams = await _require_player_teams(session, user, (e.player_id for e in payload))

    games = {}
    for entry in payload:
        if entry.game_id is None:
            continue
        if entry.game_id not in games:
            games[entry.game_id] = await data_service.get_game(session, entry.game_id)
        game = games[entry.game_id]
        if game is None or game["team_id"] != player_teams[entry.player_id]:
            raise HTTPException(
                status_code=400,
                detail=f"Game {entry.game_id} does not belong to player {entry.player_id}'s team",
            )

    return await data_service.create_stat_entries(
        session,
        [
            {
                "player_id": e.player_id,
                "type": e.type.value,
                "timestamp": e.timestamp,
                "game_id": e.game_id,
            }
            for e in payload
        ],
    )


async def _stat_with_access(session: AsyncSession, user: dict, stat_id: int) -> dict:
    entry = await data_service.get_stat_entry(session, stat_id)
    if entry is None:
        raise not_found("Stat entry")
    await require_team_access(session, user, entry["team_id"])
    return entry


@router.patch("/api/stats/{stat_id}")
async def update_stat(
    stat_id: int,
    payload: UpdateStatRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Move a stat entry to a different time (and so a different day)."""
    await _stat_with_access(session, user, stat_id)
    return await data_service.update_stat_timestamp(session, stat_id, payload.timestamp)


@router.delete("/api/stats/{stat_id}")
async def delete_stat(
    stat_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await _stat_with_access(session, user, stat_id)
    await data_service.delete_stat_entry(session, stat_id)
    return {"success": True}


@router.post("/api/parse-stats", response_model=List[ParsedStat])
@limiter.limit("20/minute")
async def parse_stats(
    request: Request,
    payload: ParseStatsRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Turn a free text game write-up into proposed stat entries.

    Nothing is saved: the client shows the result for review and posts the
    confirmed entries to /api/stats.
    """
    await _require_player_teams(session, user, (p.id for p in payload.players))
    players = [{"id": p.id, "name": p.name} for p in payload.players]
    try:
        return await llm_service.parse_stats_text(
            payload.text, players, payload.game_id, payload.timestamp
        )
    except (llm_service.LLMServiceError, ValueError) as e:
        logger.error(f"Error parsing stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error parsing stats: {str(e)}")
