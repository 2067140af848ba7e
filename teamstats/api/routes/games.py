"""Game and RSVP route handlers."""

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
from teamstats.models.schemas import CancelGameRequest, CreateGameRequest, GameRequest, RsvpRequest
from teamstats.services import data_service

logger = logging.getLogger(__name__)
router = APIRouter()


async def _game_or_404(session: AsyncSession, game_id: int) -> dict:
    game = await data_service.get_game(session, game_id)
    if game is None:
        raise not_found("Game")
    return game


@router.post("/api/games")
async def create_game(
    payload: CreateGameRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Schedule a game for a team."""
    if await data_service.get_team(session, payload.team_id) is None:
        raise not_found("Team")
    await require_team_access(session, user, payload.team_id)
    await require_active_subscription(session, payload.team_id)
    return await data_service.create_game(
        session,
        payload.team_id,
        opponent=payload.opponent,
        timestamp=payload.timestamp,
        location=payload.location,
    )


@router.put("/api/games/{game_id}")
async def update_game(
    game_id: int,
    payload: GameRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Replace a game's time, opponent and location."""
    game = await _game_or_404(session, game_id)
    await require_team_access(session, user, game["team_id"])
    await require_active_subscription(session, game["team_id"])
    return await data_service.update_game(
        session,
        game_id,
        opponent=payload.opponent,
        timestamp=payload.timestamp,
        location=payload.location,
    )


@router.patch("/api/games/{game_id}")
async def cancel_game(
    game_id: int,
    payload: CancelGameRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a game (cancelled_at set) or reinstate it (cancelled_at null)."""
    game = await _game_or_404(session, game_id)
    await require_team_access(session, user, game["team_id"])
    await require_active_subscription(session, game["team_id"])
    return await data_service.set_game_cancelled(session, game_id, payload.cancelled_at)


@router.delete("/api/games/{game_id}")
async def delete_game(
    game_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    game = await _game_or_404(session, game_id)
    await require_team_access(session, user, game["team_id"])
    await data_service.delete_game(session, game_id)
    return {"success": True}


@router.post("/api/games/{game_id}/rsvps")
async def rsvp_to_game(
    game_id: int,
    payload: RsvpRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Answer yes/no for the player the caller is linked to on the game's team.

    Answering again replaces the earlier answer.
    """
    game = await _game_or_404(session, game_id)
    player_id = await data_service.find_linked_player_id(session, user["id"], game["team_id"])
    if player_id is None:
        # Not a player on this team: behave as if the game does not exist
        raise not_found("Game")
    await require_active_subscription(session, game["team_id"])
    return await data_service.upsert_rsvp(session, game_id, player_id, payload.value.value)


@router.patch("/api/games/{game_id}/rsvps/{rsvp_id}")
async def update_rsvp(
    game_id: int,
    rsvp_id: int,
    payload: RsvpRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Change one of the caller's own RSVPs."""
    game = await _game_or_404(session, game_id)
    rsvp = await data_service.get_rsvp(session, rsvp_id)
    player_id = await data_service.find_linked_player_id(session, user["id"], game["team_id"])
    if rsvp is None or rsvp["game_id"] != game_id or player_id is None or rsvp["player_id"] != player_id:
        raise not_found("RSVP")
    await require_active_subscription(session, game["team_id"])
    return await data_service.update_rsvp(session, rsvp_id, payload.value.value)
