"""Invite and invite request route handlers."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from teamstats.api.auth_dependencies import (
    get_current_user,
    get_current_user_optional,
    not_found,
    require_team_access,
)
from teamstats.api.routes import (
    PENDING_INVITE_ID,
    PENDING_INVITE_REQUEST_TEAM_ID,
    PENDING_INVITE_TOKEN,
)
from teamstats.database.db import get_db_session
from teamstats.models.schemas import AcceptInviteRequestRequest
from teamstats.services import data_service, email_service
from teamstats.services.data_service import ConflictError, MissingTeamAdminError
from teamstats.services.task_runner import get_task_runner
from teamstats.services.user_service import public_user

logger = logging.getLogger(__name__)
router = APIRouter()


def _invite_response(invite: dict, user: Optional[dict] = None) -> dict:
    response = {"team": invite["team"], "inviter_name": invite["inviter_name"]}
    if user is not None:
        response["user"] = public_user(user)
    return response


async def _request_invite(session: AsyncSession, user: dict, team_id: int) -> Optional[dict]:
    """Create a join request and email the team admin. None if the team does not exist."""
    invite_request = await data_service.create_invite_request(session, user["id"], team_id)
    if invite_request is None:
        return None
    get_task_runner().submit(
        email_service.send_invite_request_email,
        invite_request["admin"]["email"],
        user["name"],
        invite_request["team"]["name"],
        invite_request["id"],
        invite_request["token"],
    )
    return invite_request


async def complete_pending_invites(request: Request, session: AsyncSession, user: dict) -> dict:
    """
    Finish an invite or invite request that was started before the user logged in.

    Returns:
        {"accepted_invite": team or None, "requested_team": team or None}
    """
    completed = {"accepted_invite": None, "requested_team": None}

    invite_id = request.session.pop(PENDING_INVITE_ID, None)
    token = request.session.pop(PENDING_INVITE_TOKEN, None)
    if invite_id is not None:
        invite = await data_service.get_invite(session, invite_id)
        if invite is not None and token == invite["token"]:
            try:
                accepted = await data_service.accept_invite(session, invite_id, user["id"])
                completed["accepted_invite"] = accepted["team"]
            except ConflictError as e:
                logger.warning(f"Pending invite {invite_id} not accepted: {e}")

    team_id = request.session.pop(PENDING_INVITE_REQUEST_TEAM_ID, None)
    if team_id is not None:
        try:
            invite_request = await _request_invite(session, user, int(team_id))
        except MissingTeamAdminError as e:
            # Login has already succeeded; the request is dropped
            logger.error(f"Pending invite request for team {team_id} not sent: {e}", exc_info=True)
            invite_request = None
        if invite_request is not None:
            completed["requested_team"] = invite_request["team"]

    return completed


@router.get("/api/invites/{invite_id}")
async def accept_invite(
    invite_id: int,
    request: Request,
    token: Optional[str] = None,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Accept an emailed invite.

    Without a session the invite is remembered and completed after login.
    """
    invite = await data_service.get_invite(session, invite_id)
    if invite is None:
        raise not_found("Invite")

    if user is not None and invite["user_id"] == user["id"]:
        return _invite_response(invite)

    if not token or token != invite["token"]:
        raise HTTPException(status_code=401, detail="Invalid invite token")

    if user is None:
        request.session[PENDING_INVITE_ID] = invite_id
        request.session[PENDING_INVITE_TOKEN] = token
        raise HTTPException(status_code=401, detail="Log in to accept this invite")

    try:
        accepted = await data_service.accept_invite(session, invite_id, user["id"])
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _invite_response(accepted, user)


@router.get("/api/request-invite")
async def request_invite(
    team_id: int,
    request: Request,
    user: Optional[dict] = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Ask to join a team. The team's first admin gets an email to approve it.

    Without a session the request is remembered and sent after signup.
    """
    if user is None:
        request.session[PENDING_INVITE_REQUEST_TEAM_ID] = team_id
        raise HTTPException(status_code=401, detail="Sign up to request an invite")

    invite_request = await _request_invite(session, user, team_id)
    if invite_request is None:
        raise not_found("Team")
    return {"team_name": invite_request["team"]["name"]}


@router.get("/api/invite-requests/{request_id}")
async def get_invite_request(
    request_id: int,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Show a join request with the players it could be linked to (team admins only)."""
    invite_request = await data_service.get_invite_request(session, request_id)
    if invite_request is None:
        raise not_found("Invite request")
    await require_team_access(session, user, invite_request["team_id"])
    return invite_request


@router.post("/api/invite-requests/{request_id}")
async def approve_invite_request(
    request_id: int,
    payload: AcceptInviteRequestRequest,
    user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Approve a join request by linking the requester to a player."""
    invite_request = await data_service.get_invite_request(session, request_id)
    if invite_request is None:
        raise not_found("Invite request")
    await require_team_access(session, user, invite_request["team_id"])

    try:
        result = await data_service.accept_invite_request(
            session, request_id, payload.player_id, user["id"]
        )
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    get_task_runner().submit(
        email_service.send_invite_request_accepted_email,
        result["requester_email"],
        result["team"]["name"],
        result["team"]["slug"],
    )
    return {"success": True}
