"""Player route handlers: quick stat buttons, images, invites and removal."""

import asyncio
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from teamstats.api.auth_dependencies import get_current_user, not_found, require_team_access
from teamstats.database.db import get_db_session
from teamstats.database.models import StatType
from teamstats.models.schemas import InvitePlayerRequest
from teamstats.services import auth_service, data_service, email_service, storage_service
from teamstats.services.data_service import ConflictError
from teamstats.services.task_runner import get_task_runner

logger = logging.getLogger(__name__)
router = APIRouter()


async def _player_with_access(session: AsyncSession, user: dict, player_id: int) -> dict:
    """Load a player (404) and check the user administers its team (403)."""
    player = await data_service.get_player(session, player_id)
    if player is None:
        raise not_found("Player")
    await require_team_access(session, user, player["team_id"])
    return player


@router.delete("/api/players/{player_id}")
async def delete_player(
    player_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a player together with their stats, RSVPs and invites."""
    await _player_with_access(session, user, player_id)
    await data_service.delete_player(session, player_id)
    return {"success": True}


async def _add_stat(session: AsyncSession, user: dict, player_id: int, stat_type: str) -> dict:
    await _player_with_access(session, user, player_id)
    return await data_service.add_stat_entry(session, player_id, stat_type)


async def _destroy_latest(session: AsyncSession, user: dict, player_id: int, stat_type: str) -> dict:
    await _player_with_access(session, user, player_id)
    deleted_id = await data_service.destroy_latest_stat(session, player_id, stat_type)
    return {"deleted_id": deleted_id}


@router.post("/api/players/{player_id}/goals")
async def add_goal(
    player_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Record a goal at the current time."""
    return await _add_stat(session, user, player_id, StatType.GOAL.value)


@router.post("/api/players/{player_id}/assists")
async def add_assist(
    player_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Record an assist at the current time."""
    return await _add_stat(session, user, player_id, StatType.ASSIST.value)


@router.post("/api/players/{player_id}/goals/destroy_latest")
async def destroy_latest_goal(
    player_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Undo the player's most recent goal."""
    return await _destroy_latest(session, user, player_id, StatType.GOAL.value)


@router.post("/api/players/{player_id}/assists/destroy_latest")
async def destroy_latest_assist(
    player_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Undo the player's most recent assist."""
    return await _destroy_latest(session, user, player_id, StatType.ASSIST.value)


@router.post("/api/players/{player_id}/image")
async def upload_player_image(
    player_id: int,
    file: UploadFile = File(...),
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await _player_with_access(session, user, player_id)
    data = await file.read()
    try:
        url = await asyncio.to_thread(
            storage_service.upload_player_image,
            player_id,
            data,
            file.content_type or "application/octet-stream",
        )
    except Exception as e:
        logger.error(f"Error uploading image for player {player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error uploading image: {str(e)}")
    return {"url": url}


@router.delete("/api/players/{player_id}/image", status_code=204)
async def delete_player_image(
    player_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    await _player_with_access(session, user, player_id)
    try:
        await asyncio.to_thread(storage_service.delete_player_image, player_id)
    except Exception as e:
        logger.error(f"Error deleting image for player {player_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error deleting image: {str(e)}")
    return Response(status_code=204)


@router.post("/api/players/{player_id}/invite")
async def invite_player(
    player_id: int,
    payload: InvitePlayerRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Email someone a link to claim this player."""
    player = await _player_with_access(session, user, player_id)
    try:
        email = auth_service.normalize_email(payload.email)
        invite = await data_service.create_invite(session, player_id, email, user["id"])
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    team = await data_service.get_team(session, player["team_id"])
    get_task_runner().submit(
        email_service.send_invite_email,
        invite["email"],
        user["name"],
        team["name"],
        invite["id"],
        invite["token"],
    )
    return data_service.public_invite(invite)
