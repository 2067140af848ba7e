"""
Data service layer for database operations.
Handles CRUD for teams, players, games, seasons, RSVPs, stat entries and
invites, and assembles the team stats and games pages.
"""

from typing import List, Dict, Optional, Iterable
from datetime import date, datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from teamstats.database.models import (
    Team, TeamUser, User, Player, Game, Season, Rsvp, StatEntry,
    UserInvite, UserInviteRequest, StatType, RsvpValue,
)
from teamstats.services import stats_service
from teamstats.services.access_service import has_access_to_team
from teamstats.services.auth_service import generate_token
from teamstats.services.subscription_service import team_has_active_subscription
from teamstats.utils.constants import TeamColor, theme_for
from teamstats.utils.datetime_utils import local_now, to_local_naive, isoformat_or_none
from teamstats.utils.slugify import is_valid_slug
import logging

logger = logging.getLogger(__name__)


class ConflictError(Exception):
    """The write would break a uniqueness rule (taken slug, already linked player)."""


class MissingTeamAdminError(RuntimeError):
    """A team exists without any membership row. Never handled."""


#
# Serialization helpers
#

def _team_to_dict(team: Team) -> Dict:
    return {
        "id": team.id,
        "slug": team.slug,
        "name": team.name,
        "color": team.color,
        "created_at": isoformat_or_none(team.created_at),
    }


def _player_to_dict(player: Player) -> Dict:
    return {"id": player.id, "team_id": player.team_id, "name": player.name}


def _game_to_dict(game: Game) -> Dict:
    return {
        "id": game.id,
        "team_id": game.team_id,
        "timestamp": isoformat_or_none(game.timestamp),
        "opponent": game.opponent,
        "location": game.location,
        "cancelled_at": isoformat_or_none(game.cancelled_at),
    }


def _season_to_dict(season: Season) -> Dict:
    return {
        "id": season.id,
        "team_id": season.team_id,
        "name": season.name,
        "start_date": season.start_date.isoformat(),
        "end_date": season.end_date.isoformat(),
    }


def _rsvp_to_dict(rsvp: Rsvp) -> Dict:
    return {"id": rsvp.id, "game_id": rsvp.game_id, "player_id": rsvp.player_id, "value": rsvp.value}


def _stat_to_dict(entry: StatEntry) -> Dict:
    return {
        "id": entry.id,
        "player_id": entry.player_id,
        "timestamp": isoformat_or_none(entry.timestamp),
        "type": entry.type,
        "game_id": entry.game_id,
    }


def _invite_to_dict(invite: UserInvite) -> Dict:
    return {
        "id": invite.id,
        "player_id": invite.player_id,
        "inviter_id": invite.inviter_id,
        "email": invite.email,
        "user_id": invite.user_id,
        "created_at": isoformat_or_none(invite.created_at),
        "accepted_at": isoformat_or_none(invite.accepted_at),
    }


def _validate_stat_type(stat_type: str) -> str:
    if stat_type not in {t.value for t in StatType}:
        raise ValueError(f"Invalid stat type: {stat_type}")
    return stat_type


def _validate_rsvp_value(value: str) -> str:
    if value not in {v.value for v in RsvpValue}:
        raise ValueError("RSVP response must be yes or no")
    return value


def _validate_season_dates(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValueError("Season end date must not be before its start date")


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    return to_local_naive(value) if value is not None else None


#
# Teams
#

async def slug_available(session: AsyncSession, slug: Optional[str]) -> bool:
    """A slug is available when it is non-empty and no team uses it."""
    if not slug:
        return False
    result = await session.execute(select(Team.id).where(Team.slug == slug).limit(1))
    return result.scalar_one_or_none() is None


async def create_team(session: AsyncSession, name: str, slug: str, owner_user_id: int) -> Dict:
    """
    Create a team and make the creator its first admin, in one transaction.

    Raises:
        ValueError: If the slug is not URL-safe
        ConflictError: If the slug is taken
    """
    if not is_valid_slug(slug):
        raise ValueError("Slug may only contain lowercase letters, numbers and dashes")

    team = Team(name=name.strip(), slug=slug)
    session.add(team)
    try:
        await session.flush()  # Get the team ID
        session.add(TeamUser(team_id=team.id, user_id=owner_user_id))
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise ConflictError(f"Slug {slug} is already taken") from e

    await session.refresh(team)
    logger.info(f"Created team {team.id} ({team.slug}) for user {owner_user_id}")
    return _team_to_dict(team)


async def get_team(session: AsyncSession, team_id: int) -> Optional[Dict]:
    """Get a team by ID."""
    result = await session.execute(select(Team).where(Team.id == team_id))
    team = result.scalar_one_or_none()
    return _team_to_dict(team) if team else None


async def get_team_by_slug(session: AsyncSession, slug: str) -> Optional[Dict]:
    """Get a team by its URL slug."""
    result = await session.execute(select(Team).where(Team.slug == slug))
    team = result.scalar_one_or_none()
    return _team_to_dict(team) if team else None


async def get_user_teams(session: AsyncSession, user_id: int) -> List[Dict]:
    """Teams the user is an admin of."""
    result = await session.execute(
        select(Team)
        .join(TeamUser, TeamUser.team_id == Team.id)
        .where(TeamUser.user_id == user_id)
        .order_by(Team.name)
    )
    return [_team_to_dict(t) for t in result.scalars().all()]


async def update_team_color(session: AsyncSession, team_id: int, color: str) -> Optional[Dict]:
    """
    Change a team's color.

    Raises:
        ValueError: If the color is not one of the palette colors
    """
    if color not in {c.value for c in TeamColor}:
        raise ValueError(f"Invalid color: {color}")
    await session.execute(update(Team).where(Team.id == team_id).values(color=color))
    await session.commit()
    return await get_team(session, team_id)


async def get_team_admin(session: AsyncSession, team_id: int) -> Dict:
    """
    The team's first admin (lowest membership id).

    Raises:
        MissingTeamAdminError: If the team has no membership
    """
    result = await session.execute(
        select(User)
        .join(TeamUser, TeamUser.user_id == User.id)
        .where(TeamUser.team_id == team_id)
        .order_by(TeamUser.id)
        .limit(1)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise MissingTeamAdminError(f"No team user for team {team_id}")
    return {"id": user.id, "email": user.email, "name": user.name}


#
# Team pages
#

def _pick_season(seasons: Iterable[Season], season_id: Optional[int]) -> Optional[Season]:
    if season_id is None:
        return None
    for season in seasons:
        if season.id == season_id:
            return season
    raise LookupError(f"Season {season_id} not found")


async def get_team_stats_page(
    session: AsyncSession,
    slug: str,
    user: Optional[Dict] = None,
    season_id: Optional[int] = None,
    edit: bool = False,
) -> Optional[Dict]:
    """
    Everything the team stats page shows.

    Args:
        session: Database session
        slug: Team slug
        user: Session user, if any (only used for the access flag)
        season_id: Restrict stats to this season's dates
        edit: Keep the roster in name order instead of standings order

    Returns:
        Page dict, or None if the team does not exist

    Raises:
        LookupError: If season_id does not belong to the team
    """
    result = await session.execute(
        select(Team)
        .where(Team.slug == slug)
        .options(
            selectinload(Team.players).selectinload(Player.stat_entries),
            selectinload(Team.seasons),
            selectinload(Team.subscriptions),
        )
        .execution_options(populate_existing=True)
    )
    team = result.scalar_one_or_none()
    if team is None:
        return None

    season = _pick_season(team.seasons, season_id)
    players = [
        {
            "id": p.id,
            "name": p.name,
            "stat_entries": stats_service.filter_by_season(p.stat_entries, season),
        }
        for p in team.players
    ]

    standings = stats_service.compute_standings(players, sort=not edit)
    # The day table follows the same row order as the standings
    order = {row["id"]: index for index, row in enumerate(standings)}
    players.sort(key=lambda p: order[p["id"]])

    return {
        "team": _team_to_dict(team),
        "theme": theme_for(team.color),
        "standings": standings,
        "standings_text": stats_service.format_standings_text(standings),
        "golden_boot": stats_service.golden_boot(standings),
        "day_matrix": stats_service.build_day_matrix(players),
        "seasons": [_season_to_dict(s) for s in team.seasons],
        "season": _season_to_dict(season) if season else None,
        "user_has_access": await has_access_to_team(session, user, team.id),
        "has_active_subscription": team_has_active_subscription(team),
    }


async def find_linked_player_id(session: AsyncSession, user_id: int, team_id: int) -> Optional[int]:
    """The player on ``team_id`` that ``user_id`` is linked to through an accepted invite."""
    result = await session.execute(
        select(Player.id)
        .join(UserInvite, UserInvite.player_id == Player.id)
        .where(
            Player.team_id == team_id,
            UserInvite.user_id == user_id,
            UserInvite.accepted_at.is_not(None),
        )
        .order_by(UserInvite.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_team_games_page(
    session: AsyncSession,
    slug: str,
    user: Optional[Dict] = None,
    season_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Optional[Dict]:
    """
    The games page: past, next, upcoming and unscheduled games with RSVP
    tallies, per-game stat counts and the caller's own RSVP.

    Returns:
        Page dict, or None if the team does not exist

    Raises:
        LookupError: If season_id does not belong to the team
    """
    result = await session.execute(
        select(Team)
        .where(Team.slug == slug)
        .options(
            selectinload(Team.games).selectinload(Game.rsvps),
            selectinload(Team.games).selectinload(Game.stat_entries),
            selectinload(Team.players),
            selectinload(Team.seasons),
            selectinload(Team.subscriptions),
        )
        .execution_options(populate_existing=True)
    )
    team = result.scalar_one_or_none()
    if team is None:
        return None

    season = _pick_season(team.seasons, season_id)
    games = team.games
    if season is not None:
        # Unscheduled games have no date, so they show under every season
        games = [g for g in games if g.timestamp is None or stats_service.in_season(g.timestamp, season)]

    linked_player_id = None
    if user is not None:
        linked_player_id = await find_linked_player_id(session, user["id"], team.id)

    counts = stats_service.game_stat_counts(e for g in games for e in g.stat_entries)
    roster_size = len(team.players)

    def _summary(game: Game) -> Dict:
        summary = _game_to_dict(game)
        summary["rsvps"] = stats_service.rsvp_tally(game.rsvps, roster_size)
        summary["stats"] = counts.get(game.id, {"goals": 0, "assists": 0})
        mine = next((r for r in game.rsvps if r.player_id == linked_player_id), None)
        summary["my_rsvp"] = _rsvp_to_dict(mine) if mine else None
        return summary

    partitioned = stats_service.partition_games(games, now or local_now())
    return {
        "team": _team_to_dict(team),
        "theme": theme_for(team.color),
        "past": [_summary(g) for g in partitioned["past"]],
        "next_game": _summary(partitioned["next_game"]) if partitioned["next_game"] else None,
        "upcoming": [_summary(g) for g in partitioned["upcoming"]],
        "unscheduled": [_summary(g) for g in partitioned["unscheduled"]],
        "seasons": [_season_to_dict(s) for s in team.seasons],
        "season": _season_to_dict(season) if season else None,
        "linked_player_id": linked_player_id,
        "user_has_access": await has_access_to_team(session, user, team.id),
        "has_active_subscription": team_has_active_subscription(team),
    }


async def get_team_roster(session: AsyncSession, team_id: int) -> List[Dict]:
    """Players with their invite state, for the admin roster page."""
    result = await session.execute(
        select(Player)
        .where(Player.team_id == team_id)
        .options(selectinload(Player.invites))
        .order_by(Player.name)
    )
    roster = []
    for player in result.scalars().all():
        accepted = player.accepted_invite
        latest = player.invites[-1] if player.invites else None
        if accepted is not None:
            invite_status = "accepted"
        elif latest is not None:
            invite_status = "pending"
        else:
            invite_status = None
        entry = _player_to_dict(player)
        entry["invite_status"] = invite_status
        entry["invite_email"] = (accepted or latest).email if (accepted or latest) else None
        entry["linked_user_id"] = accepted.user_id if accepted else None
        roster.append(entry)
    return roster


async def list_team_stats(session: AsyncSession, team_id: int) -> List[Dict]:
    """Flat list of a team's stat entries with player names."""
    result = await session.execute(
        select(StatEntry, Player.name)
        .join(Player, Player.id == StatEntry.player_id)
        .where(Player.team_id == team_id)
        .order_by(StatEntry.timestamp, StatEntry.id)
    )
    stats = []
    for entry, player_name in result.all():
        row = _stat_to_dict(entry)
        row["player"] = player_name
        stats.append(row)
    return stats


#
# Players
#

async def get_player(session: AsyncSession, player_id: int) -> Optional[Dict]:
    """Get a player by ID."""
    result = await session.execute(select(Player).where(Player.id == player_id))
    player = result.scalar_one_or_none()
    return _player_to_dict(player) if player else None


async def create_player(
    session: AsyncSession,
    team_id: int,
    name: str,
    email: Optional[str] = None,
    inviter_id: Optional[int] = None,
) -> Dict:
    """
    Add a player to a team, optionally inviting someone to claim it.

    The player and its invite are written in one transaction.

    Returns:
        {"player": {...}, "invite": {... "token"} or None}
    """
    if not name or not name.strip():
        raise ValueError("Name is required")

    player = Player(team_id=team_id, name=name.strip())
    session.add(player)
    invite = None
    try:
        await session.flush()  # Get the player ID
        if email:
            invite = UserInvite(
                token=generate_token(),
                player_id=player.id,
                inviter_id=inviter_id,
                email=email,
                created_at=local_now(),
            )
            session.add(invite)
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    invite_dict = None
    if invite is not None:
        invite_dict = _invite_to_dict(invite)
        invite_dict["token"] = invite.token
    return {"player": _player_to_dict(player), "invite": invite_dict}


async def delete_player(session: AsyncSession, player_id: int) -> bool:
    """Delete a player; its stat entries, RSVPs and invites go with it."""
    result = await session.execute(delete(Player).where(Player.id == player_id))
    await session.commit()
    return result.rowcount > 0


#
# Stat entries
#

async def add_stat_entry(
    session: AsyncSession,
    player_id: int,
    stat_type: str,
    timestamp: Optional[datetime] = None,
    game_id: Optional[int] = None,
) -> Dict:
    """Record one goal or assist. Defaults to the current team-local time."""
    entry = StatEntry(
        player_id=player_id,
        type=_validate_stat_type(stat_type),
        timestamp=_naive(timestamp) or local_now(),
        game_id=game_id,
    )
    session.add(entry)
    await session.commit()
    await session.refresh(entry)
    return _stat_to_dict(entry)


async def create_stat_entries(session: AsyncSession, entries: List[Dict]) -> List[Dict]:
    """Bulk insert stat entries ({player_id, type, timestamp, game_id?}) in one transaction."""
    rows = [
        StatEntry(
            player_id=e["player_id"],
            type=_validate_stat_type(e["type"]),
            timestamp=_naive(e["timestamp"]),
            game_id=e.get("game_id"),
        )
        for e in entries
    ]
    session.add_all(rows)
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return [_stat_to_dict(r) for r in rows]


async def destroy_latest_stat(session: AsyncSession, player_id: int, stat_type: str) -> Optional[int]:
    """
    Delete the player's most recently created entry of ``stat_type``.

    Returns:
        The deleted entry's ID, or None if the player had none
    """
    result = await session.execute(
        select(StatEntry.id)
        .where(StatEntry.player_id == player_id, StatEntry.type == _validate_stat_type(stat_type))
        .order_by(StatEntry.id.desc())
        .limit(1)
    )
    entry_id = result.scalar_one_or_none()
    if entry_id is None:
        return None
    await session.execute(delete(StatEntry).where(StatEntry.id == entry_id))
    await session.commit()
    return entry_id


async def get_stat_entry(session: AsyncSession, stat_id: int) -> Optional[Dict]:
    """Get a stat entry by ID, with its player's team_id."""
    result = await session.execute(
        select(StatEntry, Player.team_id)
        .join(Player, Player.id == StatEntry.player_id)
        .where(StatEntry.id == stat_id)
    )
    row = result.first()
    if row is None:
        return None
    entry, team_id = row
    data = _stat_to_dict(entry)
    data["team_id"] = team_id
    return data


async def update_stat_timestamp(session: AsyncSession, stat_id: int, timestamp: datetime) -> Optional[Dict]:
    await session.execute(
        update(StatEntry).where(StatEntry.id == stat_id).values(timestamp=_naive(timestamp))
    )
    await session.commit()
    return await get_stat_entry(session, stat_id)


async def delete_stat_entry(session: AsyncSession, stat_id: int) -> bool:
    result = await session.execute(delete(StatEntry).where(StatEntry.id == stat_id))
    await session.commit()
    return result.rowcount > 0


#
# Games
#

async def get_game(session: AsyncSession, game_id: int) -> Optional[Dict]:
    """Get a game by ID."""
    result = await session.execute(select(Game).where(Game.id == game_id))
    game = result.scalar_one_or_none()
    return _game_to_dict(game) if game else None


async def create_game(
    session: AsyncSession,
    team_id: int,
    opponent: str,
    timestamp: Optional[datetime] = None,
    location: Optional[str] = None,
) -> Dict:
    """Schedule a game. A missing timestamp means the time is TBD."""
    game = Game(team_id=team_id, opponent=opponent, timestamp=_naive(timestamp), location=location)
    session.add(game)
    await session.commit()
    await session.refresh(game)
    return _game_to_dict(game)


async def create_games(session: AsyncSession, team_id: int, games: List[Dict]) -> List[Dict]:
    """Insert imported games ({timestamp, opponent, location}) in one transaction."""
    rows = [
        Game(
            team_id=team_id,
            opponent=g["opponent"],
            timestamp=_naive(g.get("timestamp")),
            location=g.get("location"),
        )
        for g in games
    ]
    session.add_all(rows)
    try:
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    logger.info(f"Imported {len(rows)} games for team {team_id}")
    return [_game_to_dict(g) for g in rows]


async def update_game(
    session: AsyncSession,
    game_id: int,
    opponent: str,
    timestamp: Optional[datetime] = None,
    location: Optional[str] = None,
) -> Optional[Dict]:
    """Replace a game's time, opponent and location."""
    await session.execute(
        update(Game)
        .where(Game.id == game_id)
        .values(opponent=opponent, timestamp=_naive(timestamp), location=location)
    )
    await session.commit()
    return await get_game(session, game_id)


async def set_game_cancelled(
    session: AsyncSession, game_id: int, cancelled_at: Optional[datetime]
) -> Optional[Dict]:
    """Cancel (timestamp) or uncancel (None) a game."""
    await session.execute(
        update(Game).where(Game.id == game_id).values(cancelled_at=_naive(cancelled_at))
    )
    await session.commit()
    return await get_game(session, game_id)


async def delete_game(session: AsyncSession, game_id: int) -> bool:
    """Delete a game. Its RSVPs are removed and its stat entries detached."""
    result = await session.execute(delete(Game).where(Game.id == game_id))
    await session.commit()
    return result.rowcount > 0


#
# RSVPs
#

async def upsert_rsvp(session: AsyncSession, game_id: int, player_id: int, value: str) -> Dict:
    """Set a player's response for a game, replacing any earlier one."""
    _validate_rsvp_value(value)
    stmt = insert(Rsvp).values(game_id=game_id, player_id=player_id, value=value)
    stmt = stmt.on_conflict_do_update(
        index_elements=["game_id", "player_id"],
        set_={"value": stmt.excluded.value},
    )
    await session.execute(stmt)
    await session.commit()

    # The upsert bypasses the identity map, so reload the row
    result = await session.execute(
        select(Rsvp)
        .where(Rsvp.game_id == game_id, Rsvp.player_id == player_id)
        .execution_options(populate_existing=True)
    )
    return _rsvp_to_dict(result.scalar_one())


async def get_rsvp(session: AsyncSession, rsvp_id: int) -> Optional[Dict]:
    result = await session.execute(select(Rsvp).where(Rsvp.id == rsvp_id))
    rsvp = result.scalar_one_or_none()
    return _rsvp_to_dict(rsvp) if rsvp else None


async def update_rsvp(session: AsyncSession, rsvp_id: int, value: str) -> Optional[Dict]:
    _validate_rsvp_value(value)
    await session.execute(update(Rsvp).where(Rsvp.id == rsvp_id).values(value=value))
    await session.commit()
    return await get_rsvp(session, rsvp_id)


#
# Seasons
#

async def list_seasons(session: AsyncSession, team_id: int) -> List[Dict]:
    """List seasons for a team, oldest first."""
    result = await session.execute(
        select(Season).where(Season.team_id == team_id).order_by(Season.start_date)
    )
    return [_season_to_dict(s) for s in result.scalars().all()]


async def get_season(session: AsyncSession, season_id: int) -> Optional[Dict]:
    """Get a season by ID."""
    result = await session.execute(select(Season).where(Season.id == season_id))
    season = result.scalar_one_or_none()
    return _season_to_dict(season) if season else None


async def create_season(
    session: AsyncSession, team_id: int, name: str, start_date: date, end_date: date
) -> Dict:
    """Create a season. Overlapping seasons are allowed."""
    _validate_season_dates(start_date, end_date)
    season = Season(team_id=team_id, name=name, start_date=start_date, end_date=end_date)
    session.add(season)
    await session.commit()
    await session.refresh(season)
    return _season_to_dict(season)


async def update_season(
    session: AsyncSession, season_id: int, name: str, start_date: date, end_date: date
) -> Optional[Dict]:
    """Update a season."""
    _validate_season_dates(start_date, end_date)
    await session.execute(
        update(Season)
        .where(Season.id == season_id)
        .values(name=name, start_date=start_date, end_date=end_date)
    )
    await session.commit()
    return await get_season(session, season_id)


async def delete_season(session: AsyncSession, season_id: int) -> bool:
    result = await session.execute(delete(Season).where(Season.id == season_id))
    await session.commit()
    return result.rowcount > 0


#
# Invites
#

async def create_invite(session: AsyncSession, player_id: int, email: str, inviter_id: int) -> Dict:
    """
    Create a token invite for a player. Re-sending creates a fresh invite.

    Raises:
        ConflictError: If the player is already linked to a user
    """
    if await _player_has_accepted_invite(session, player_id):
        raise ConflictError(f"Player {player_id} is already linked to a user")
    invite = UserInvite(
        token=generate_token(),
        player_id=player_id,
        inviter_id=inviter_id,
        email=email,
        created_at=local_now(),
    )
    session.add(invite)
    await session.commit()
    await session.refresh(invite)
    data = _invite_to_dict(invite)
    data["token"] = invite.token
    return data


async def _player_has_accepted_invite(
    session: AsyncSession, player_id: int, exclude_invite_id: Optional[int] = None
) -> bool:
    query = select(UserInvite.id).where(
        UserInvite.player_id == player_id, UserInvite.accepted_at.is_not(None)
    )
    if exclude_invite_id is not None:
        query = query.where(UserInvite.id != exclude_invite_id)
    result = await session.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def get_invite(session: AsyncSession, invite_id: int) -> Optional[Dict]:
    """Get an invite with its token, team and inviter name."""
    result = await session.execute(
        select(UserInvite)
        .where(UserInvite.id == invite_id)
        .options(
            selectinload(UserInvite.player).selectinload(Player.team),
            selectinload(UserInvite.inviter),
        )
    )
    invite = result.scalar_one_or_none()
    if invite is None:
        return None
    data = _invite_to_dict(invite)
    data["token"] = invite.token
    data["team"] = _team_to_dict(invite.player.team)
    data["player"] = _player_to_dict(invite.player)
    data["inviter_name"] = invite.inviter.name if invite.inviter else None
    return data


async def accept_invite(session: AsyncSession, invite_id: int, user_id: int) -> Dict:
    """
    Link the user to the invite's player.

    Accepting an invite the user already accepted is a no-op.

    Raises:
        LookupError: If the invite does not exist
        ConflictError: If someone else is already linked to the player
    """
    result = await session.execute(select(UserInvite).where(UserInvite.id == invite_id))
    invite = result.scalar_one_or_none()
    if invite is None:
        raise LookupError(f"Invite {invite_id} not found")
    if invite.accepted_at is not None:
        if invite.user_id == user_id:
            return await get_invite(session, invite_id)
        raise ConflictError(f"Invite {invite_id} was already accepted")
    if await _player_has_accepted_invite(session, invite.player_id, exclude_invite_id=invite_id):
        raise ConflictError(f"Player {invite.player_id} is already linked to a user")

    await session.execute(
        update(UserInvite)
        .where(UserInvite.id == invite_id)
        .values(user_id=user_id, accepted_at=local_now())
    )
    await session.commit()
    logger.info(f"User {user_id} accepted invite {invite_id}")
    return await get_invite(session, invite_id)


async def create_invite_request(session: AsyncSession, user_id: int, team_id: int) -> Optional[Dict]:
    """
    Record a user's request to join a team.

    Returns:
        {"id", "token", "team": {...}, "admin": {...}}, or None if the team does not exist

    Raises:
        MissingTeamAdminError: If the team has no admin to approve the request
    """
    team = await get_team(session, team_id)
    if team is None:
        return None
    admin = await get_team_admin(session, team_id)

    request = UserInviteRequest(
        user_id=user_id, team_id=team_id, token=generate_token(), created_at=local_now()
    )
    session.add(request)
    await session.commit()
    await session.refresh(request)
    return {"id": request.id, "token": request.token, "team": team, "admin": admin}


async def get_invite_request(session: AsyncSession, request_id: int) -> Optional[Dict]:
    """
    Get an invite request with the requester, the team, and the team's
    players that nobody has claimed yet.
    """
    result = await session.execute(
        select(UserInviteRequest)
        .where(UserInviteRequest.id == request_id)
        .options(
            selectinload(UserInviteRequest.user),
            selectinload(UserInviteRequest.team)
            .selectinload(Team.players)
            .selectinload(Player.invites),
        )
    )
    request = result.scalar_one_or_none()
    if request is None:
        return None
    return {
        "id": request.id,
        "team_id": request.team_id,
        "user_id": request.user_id,
        "created_at": isoformat_or_none(request.created_at),
        "accepted_at": isoformat_or_none(request.accepted_at),
        "user": {"id": request.user.id, "name": request.user.name, "email": request.user.email},
        "team": _team_to_dict(request.team),
        "available_players": [
            _player_to_dict(p) for p in request.team.players if p.accepted_invite is None
        ],
    }


async def accept_invite_request(
    session: AsyncSession, request_id: int, player_id: int, approver_id: int
) -> Dict:
    """
    Approve a join request by linking the requester to a player.

    Marks the request accepted and creates an already-accepted invite in one
    transaction.

    Returns:
        {"requester_email", "team": {...}}

    Raises:
        LookupError: If the request does not exist
        ValueError: If the player is not on the request's team
        ConflictError: If the request was already accepted or the player is
            already linked to a user
    """
    result = await session.execute(
        select(UserInviteRequest)
        .where(UserInviteRequest.id == request_id)
        .options(selectinload(UserInviteRequest.user), selectinload(UserInviteRequest.team))
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise LookupError(f"Invite request {request_id} not found")
    if request.accepted_at is not None:
        raise ConflictError(f"Invite request {request_id} was already accepted")

    player = await get_player(session, player_id)
    if player is None or player["team_id"] != request.team_id:
        raise ValueError("Player is not on this team")
    if await _player_has_accepted_invite(session, player_id):
        raise ConflictError(f"Player {player_id} is already linked to a user")

    now = local_now()
    try:
        await session.execute(
            update(UserInviteRequest)
            .where(UserInviteRequest.id == request_id)
            .values(accepted_at=now)
        )
        session.add(
            UserInvite(
                user_id=request.user_id,
                accepted_at=now,
                created_at=now,
                player_id=player_id,
                email=request.user.email,
                token=request.token,
                inviter_id=approver_id,
            )
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info(f"Invite request {request_id} accepted; user {request.user_id} linked to player {player_id}")
    return {"requester_email": request.user.email, "team": _team_to_dict(request.team)}


def public_invite(invite: Dict) -> Dict:
    """Invite dict without its token, for API responses."""
    return {key: value for key, value in invite.items() if key != "token"}

