#!/usr/bin/env python3
"""
Create a dev user who plays on every team, for local testing of RSVPs and
player views.

Refuses to run when ENV=production.

Usage:
    python scripts/create_dev_users.py
    (login: devplayer@example.com / asdfasdf)
"""

import asyncio
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from sqlalchemy import select

from teamstats.database.db import AsyncSessionLocal
from teamstats.database.models import Player, Team, TeamUser, User, UserInvite
from teamstats.services.auth_service import generate_token, hash_password
from teamstats.utils.datetime_utils import local_now

DEV_USER = {
    "name": "Dev Player",
    "email": "devplayer@example.com",
    "password": "asdfasdf",
}


async def main():
    if os.getenv("ENV", "").lower() == "production":
        print("Refusing to create dev users in production", file=sys.stderr)
        return 1

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == DEV_USER["email"]))
        if result.scalar_one_or_none() is not None:
            print(f"⏭️  {DEV_USER['email']} already exists, skipping")
            return 0

        try:
            user = User(
                name=DEV_USER["name"],
                email=DEV_USER["email"],
                password_hash=hash_password(DEV_USER["password"]),
            )
            session.add(user)
            await session.flush()

            teams = (await session.execute(select(Team).order_by(Team.id))).scalars().all()
            for team in teams:
                player = Player(team_id=team.id, name=user.name)
                session.add(player)
                await session.flush()

                admin = await session.execute(
                    select(TeamUser.user_id).where(TeamUser.team_id == team.id).order_by(TeamUser.id).limit(1)
                )
                now = local_now()
                session.add(
                    UserInvite(
                        token=generate_token(),
                        player_id=player.id,
                        inviter_id=admin.scalar_one_or_none(),
                        email=user.email,
                        created_at=now,
                        accepted_at=now,
                        user_id=user.id,
                    )
                )
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    print(f"✓ {DEV_USER['name']} has been added as a player to {len(teams)} team(s)")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
