"""
Team access control.

Membership (a TeamUser row) is the only thing that grants a user the right
to change a team's data.
"""

from typing import Iterable, List, Optional, Dict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from teamstats.database.models import Player, TeamUser


async def has_access_to_team(session: AsyncSession, user: Optional[Dict], team_id: int) -> bool:
    """
    Check whether a user may act on a team.

    A missing user is a valid "no" rather than an error. No caching: every
    call is a direct existence query.

    Args:
        session: Database session
        user: Authenticated user dict, or None for anonymous requests
        team_id: Team to check

    Returns:
        True iff a membership row links the user to the team
    """
    if user is None:
        return False

    result = await session.execute(
        select(1)
        .where(TeamUser.team_id == team_id, TeamUser.user_id == user["id"])
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def accessible_player_teams(
    session: AsyncSession, user: Dict, player_ids: Iterable[int]
) -> Dict[int, int]:
    """
    Map each player id the user may edit to its team id.

    Players the user has no membership for (or that do not exist) are absent
    from the result.
    """
    ids = list(set(player_ids))
    if not ids:
        return {}
    result = await session.execute(
        select(Player.id, Player.team_id)
        .join(TeamUser, TeamUser.team_id == Player.team_id)
        .where(TeamUser.user_id == user["id"], Player.id.in_(ids))
        .distinct()
    )
    return {player_id: team_id for player_id, team_id in result.all()}


async def list_team_ids_for_user(session: AsyncSession, user_id: int) -> List[int]:
    result = await session.execute(
        select(TeamUser.team_id).where(TeamUser.user_id == user_id).order_by(TeamUser.id)
    )
    return list(result.scalars().all())
