"""
Subscription gate: turns a team's billing record into a feature flag.
"""

from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from teamstats.database.models import TeamSubscription
from teamstats.utils.constants import INACTIVE_SUBSCRIPTION_STATUSES


def active_subscription(subscription: Optional[TeamSubscription]) -> bool:
    """
    Whether a subscription record enables paid features.

    Only "canceled" and "unpaid" close the gate. Every other status,
    including ones Stripe adds in the future, leaves it open.
    """
    if subscription is None:
        return False
    return subscription.status not in INACTIVE_SUBSCRIPTION_STATUSES


def team_has_active_subscription(team) -> bool:
    """Gate check for a team loaded with its subscriptions relationship."""
    return active_subscription(team.subscription)


async def get_team_subscription(session: AsyncSession, team_id: int) -> Optional[TeamSubscription]:
    """Latest subscription row for a team, or None."""
    result = await session.execute(
        select(TeamSubscription)
        .where(TeamSubscription.team_id == team_id)
        .order_by(TeamSubscription.id.desc())
        .limit(1)
        # The webhook writes this row with a Core upsert; never trust a cached copy
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def is_team_subscription_active(session: AsyncSession, team_id: int) -> bool:
    return active_subscription(await get_team_subscription(session, team_id))
