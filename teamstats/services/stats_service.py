"""
Stat aggregation service.
Builds standings, per-day streak tables and game summaries from raw rows.

Nothing here touches the database: callers load players with their stat
entries (and games with their RSVPs) and pass them in. Items may be ORM
objects or plain mappings.
"""

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from teamstats.database.models import StatType, RsvpValue
from teamstats.utils.datetime_utils import day_key


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def _serialize_timestamp(value: Any) -> Optional[str]:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


# ============================================================================
# Standings
# ============================================================================

def count_stats(entries: Iterable[Any]) -> Tuple[int, int]:
    """
    Count goals and assists in a list of stat entries.

    Returns:
        (goals, assists)
    """
    goals = 0
    assists = 0
    for entry in entries:
        stat_type = _field(entry, "type")
        if stat_type == StatType.GOAL.value:
            goals += 1
        elif stat_type == StatType.ASSIST.value:
            assists += 1
    return goals, assists


def compute_standings(players: Sequence[Any], sort: bool = True) -> List[Dict]:
    """
    Summarize each player's goals and assists.

    Sorted by goals descending, then assists descending. The sort is stable,
    so players tied on both keep their input order (the loaders supply
    players by name ascending).

    Args:
        players: Players with a ``stat_entries`` collection
        sort: False keeps input order (edit mode lists the roster by name)

    Returns:
        List of {id, name, goals, assists}
    """
    rows = []
    for player in players:
        goals, assists = count_stats(_field(player, "stat_entries") or [])
        rows.append(
            {
                "id": _field(player, "id"),
                "name": _field(player, "name"),
                "goals": goals,
                "assists": assists,
            }
        )
    if not sort:
        return rows
    return sorted(rows, key=lambda row: (-row["goals"], -row["assists"]))


def format_standings_text(standings: Sequence[Dict]) -> str:
    """Plain text standings for pasting into a team chat."""
    lines = [f"{row['name']}: {row['goals']}G {row['assists']}A" for row in standings]
    return "Stats:\n\n" + "\n".join(lines)


def golden_boot(standings: Sequence[Dict]) -> List[Dict]:
    """Top goal scorer(s). Ties are all included; empty if nobody has scored."""
    if not standings:
        return []
    top = max(row["goals"] for row in standings)
    if top == 0:
        return []
    return [row for row in standings if row["goals"] == top]


# ============================================================================
# Per-day matrix
# ============================================================================

def collect_days(players: Sequence[Any]) -> List[str]:
    """Sorted union of the calendar days that have at least one stat entry."""
    days = {
        day_key(_field(entry, "timestamp"))
        for player in players
        for entry in (_field(player, "stat_entries") or [])
    }
    return sorted(days)


def _bucket_by_day(entries: Iterable[Any], days: Sequence[str]) -> List[List[Any]]:
    buckets: Dict[str, List[Any]] = {day: [] for day in days}
    for entry in entries:
        buckets.setdefault(day_key(_field(entry, "timestamp")), []).append(entry)
    return [buckets[day] for day in days]


def build_day_matrix(players: Sequence[Any]) -> Dict[str, Any]:
    """
    Bucket every player's stat entries by calendar day.

    Every row has one bucket per day in the global day list, empty when the
    player has nothing that day. An entry is flagged as a streak when the
    previous or next bucket for the same player holds an entry of the same
    type.

    Returns:
        {"days": [...], "rows": [{"player_id", "name", "days": [{"day", "entries"}]}]}
    """
    days = collect_days(players)
    rows = []
    for player in players:
        buckets = _bucket_by_day(_field(player, "stat_entries") or [], days)
        types_by_bucket = [{_field(entry, "type") for entry in bucket} for bucket in buckets]

        row_days = []
        for index, (day, bucket) in enumerate(zip(days, buckets)):
            previous_types = types_by_bucket[index - 1] if index > 0 else set()
            next_types = types_by_bucket[index + 1] if index + 1 < len(buckets) else set()
            row_days.append(
                {
                    "day": day,
                    "entries": [
                        {
                            "id": _field(entry, "id"),
                            "type": _field(entry, "type"),
                            "timestamp": _serialize_timestamp(_field(entry, "timestamp")),
                            "streak": _field(entry, "type") in previous_types
                            or _field(entry, "type") in next_types,
                        }
                        for entry in bucket
                    ],
                }
            )
        rows.append(
            {
                "player_id": _field(player, "id"),
                "name": _field(player, "name"),
                "days": row_days,
            }
        )
    return {"days": days, "rows": rows}


# ============================================================================
# Games
# ============================================================================

def rsvp_tally(rsvps: Iterable[Any], roster_size: int) -> Dict[str, int]:
    """Count yes/no responses against the roster size."""
    yes = 0
    no = 0
    for rsvp in rsvps:
        value = _field(rsvp, "value")
        if value == RsvpValue.YES.value:
            yes += 1
        elif value == RsvpValue.NO.value:
            no += 1
    return {
        "yes": yes,
        "no": no,
        "no_response": max(roster_size - yes - no, 0),
        "roster_size": roster_size,
    }


def game_stat_counts(entries: Iterable[Any]) -> Dict[int, Dict[str, int]]:
    """Goals and assists per game id. Entries without a game are skipped."""
    counts: Dict[int, Dict[str, int]] = {}
    for entry in entries:
        game_id = _field(entry, "game_id")
        if game_id is None:
            continue
        bucket = counts.setdefault(game_id, {"goals": 0, "assists": 0})
        stat_type = _field(entry, "type")
        if stat_type == StatType.GOAL.value:
            bucket["goals"] += 1
        elif stat_type == StatType.ASSIST.value:
            bucket["assists"] += 1
    return counts


def partition_games(games: Sequence[Any], now: datetime) -> Dict[str, Any]:
    """
    Split a team's games into past, next, upcoming and unscheduled.

    Games without a timestamp are unscheduled and never count as next or
    past. A game is past when its timestamp is at or before ``now``. The
    first upcoming game is pulled out as ``next_game``. Cancellation plays
    no part: a cancelled game stays where its time puts it.
    """
    unscheduled = [game for game in games if _field(game, "timestamp") is None]
    scheduled = sorted(
        (game for game in games if _field(game, "timestamp") is not None),
        key=lambda game: _field(game, "timestamp"),
    )
    past = [game for game in scheduled if _field(game, "timestamp") <= now]
    upcoming = [game for game in scheduled if _field(game, "timestamp") > now]
    next_game = upcoming.pop(0) if upcoming else None
    return {
        "past": past,
        "next_game": next_game,
        "upcoming": upcoming,
        "unscheduled": unscheduled,
    }


# ============================================================================
# Seasons
# ============================================================================

def in_season(value: Any, season: Any) -> bool:
    """Whether a timestamp's calendar day falls inside a season (inclusive)."""
    if value is None:
        return False
    day = date.fromisoformat(day_key(value))
    return _field(season, "start_date") <= day <= _field(season, "end_date")


def filter_by_season(items: Iterable[Any], season: Optional[Any], key: str = "timestamp") -> List[Any]:
    """Keep items whose ``key`` timestamp is inside the season. No season keeps everything."""
    if season is None:
        return list(items)
    return [item for item in items if in_season(_field(item, key), season)]
