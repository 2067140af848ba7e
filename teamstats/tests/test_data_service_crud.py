"""
Tests for data_service CRUD operations and page assembly.
Covers teams, players, stats, games, RSVPs, seasons and invites.
"""
from datetime import date, datetime

import pytest
import pytest_asyncio
import pytz
from sqlalchemy import func, select

from teamstats.database.models import Game, Player, Rsvp, StatEntry, Team, UserInvite
from teamstats.services import data_service
from teamstats.services.data_service import ConflictError, MissingTeamAdminError

# db_session, admin_user, other_user and team fixtures come from conftest.py


@pytest_asyncio.fixture
async def players(db_session, team):
    """Two players on the test team."""
    a = Player(team_id=team["id"], name="Alex")
    b = Player(team_id=team["id"], name="Blair")
    db_session.add_all([a, b])
    await db_session.commit()
    return {"alex": a.id, "blair": b.id}


async def count(db_session, model):
    result = await db_session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


# ============================================================================
# Teams
# ============================================================================

@pytest.mark.asyncio
async def test_create_team_adds_owner_membership(db_session, admin_user):
    team = await data_service.create_team(db_session, " Blue Team ", "blue-team", admin_user["id"])

    assert team["name"] == "Blue Team"
    assert team["slug"] == "blue-team"
    assert team["color"] == "green"
    assert [t["id"] for t in await data_service.get_user_teams(db_session, admin_user["id"])] == [team["id"]]


@pytest.mark.asyncio
async def test_create_team_with_taken_slug_conflicts(db_session, admin_user, team):
    with pytest.raises(ConflictError):
        await data_service.create_team(db_session, "Other", team["slug"], admin_user["id"])
    assert await count(db_session, Team) == 1


@pytest.mark.asyncio
async def test_create_team_rejects_invalid_slug(db_session, admin_user):
    with pytest.raises(ValueError):
        await data_service.create_team(db_session, "Bad", "Not A Slug!", admin_user["id"])


@pytest.mark.asyncio
async def test_slug_available(db_session, team):
    assert await data_service.slug_available(db_session, team["slug"]) is False
    assert await data_service.slug_available(db_session, "free-slug") is True
    assert await data_service.slug_available(db_session, "") is False
    assert await data_service.slug_available(db_session, None) is False


@pytest.mark.asyncio
async def test_update_team_color(db_session, team):
    updated = await data_service.update_team_color(db_session, team["id"], "blue")
    assert updated["color"] == "blue"

    with pytest.raises(ValueError):
        await data_service.update_team_color(db_session, team["id"], "plaid")


@pytest.mark.asyncio
async def test_team_admin_missing_is_fatal(db_session):
    orphan = Team(name="Orphans", slug="orphans")
    db_session.add(orphan)
    await db_session.commit()

    with pytest.raises(MissingTeamAdminError):
        await data_service.get_team_admin(db_session, orphan.id)


# ============================================================================
# Players and stats
# ============================================================================

@pytest.mark.asyncio
async def test_create_player_with_email_creates_invite(db_session, admin_user, team):
    result = await data_service.create_player(
        db_session, team["id"], "Casey", email="casey@example.com", inviter_id=admin_user["id"]
    )

    assert result["player"]["name"] == "Casey"
    assert result["invite"]["email"] == "casey@example.com"
    assert len(result["invite"]["token"]) == 32
    assert "token" not in data_service.public_invite(result["invite"])


@pytest.mark.asyncio
async def test_create_player_without_email(db_session, team):
    result = await data_service.create_player(db_session, team["id"], "Casey")
    assert result["invite"] is None


@pytest.mark.asyncio
async def test_delete_player_removes_stats(db_session, players):
    await data_service.add_stat_entry(db_session, players["alex"], "goal")
    assert await data_service.delete_player(db_session, players["alex"]) is True
    assert await count(db_session, StatEntry) == 0


@pytest.mark.asyncio
async def test_add_stat_defaults_to_now(db_session, players):
    entry = await data_service.add_stat_entry(db_session, players["alex"], "goal")
    assert entry["type"] == "goal"
    assert entry["timestamp"] is not None
    assert entry["game_id"] is None


@pytest.mark.asyncio
async def test_add_stat_converts_aware_timestamp_to_local(db_session, players):
    utc_time = pytz.UTC.localize(datetime(2024, 5, 2, 3, 0))
    entry = await data_service.add_stat_entry(db_session, players["alex"], "assist", timestamp=utc_time)
    # 03:00 UTC is 20:00 the previous evening in Vancouver (PDT)
    assert entry["timestamp"] == "2024-05-01T20:00:00"


@pytest.mark.asyncio
async def test_add_stat_rejects_unknown_type(db_session, players):
    with pytest.raises(ValueError):
        await data_service.add_stat_entry(db_session, players["alex"], "yellow_card")


@pytest.mark.asyncio
async def test_destroy_latest_removes_most_recent_of_type(db_session, team, players):
    first = await data_service.add_stat_entry(db_session, players["alex"], "goal")
    second = await data_service.add_stat_entry(db_session, players["alex"], "goal")
    assist = await data_service.add_stat_entry(db_session, players["alex"], "assist")

    assert await data_service.destroy_latest_stat(db_session, players["alex"], "goal") == second["id"]
    remaining = {s["id"] for s in await data_service.list_team_stats(db_session, team["id"])}
    assert remaining == {first["id"], assist["id"]}


@pytest.mark.asyncio
async def test_destroy_latest_with_nothing_to_remove(db_session, players):
    assert await data_service.destroy_latest_stat(db_session, players["alex"], "goal") is None


@pytest.mark.asyncio
async def test_bulk_stats_and_timestamp_update(db_session, players):
    created = await data_service.create_stat_entries(
        db_session,
        [
            {"player_id": players["alex"], "type": "goal", "timestamp": datetime(2024, 5, 1, 19, 0)},
            {"player_id": players["blair"], "type": "assist", "timestamp": datetime(2024, 5, 1, 19, 0)},
        ],
    )
    assert len(created) == 2

    updated = await data_service.update_stat_timestamp(db_session, created[0]["id"], datetime(2024, 5, 8, 19, 0))
    assert updated["timestamp"] == "2024-05-08T19:00:00"
    assert updated["team_id"] is not None

    assert await data_service.delete_stat_entry(db_session, created[1]["id"]) is True
    assert await data_service.get_stat_entry(db_session, created[1]["id"]) is None


# ============================================================================
# Games and RSVPs
# ============================================================================

@pytest.mark.asyncio
async def test_game_lifecycle(db_session, team):
    game = await data_service.create_game(
        db_session, team["id"], opponent="Reds", timestamp=datetime(2024, 6, 8, 19, 0), location="Field 2"
    )
    assert game["timestamp"] == "2024-06-08T19:00:00"

    updated = await data_service.update_game(db_session, game["id"], opponent="Blues", timestamp=None)
    assert updated["opponent"] == "Blues"
    assert updated["timestamp"] is None
    assert updated["location"] is None

    cancelled = await data_service.set_game_cancelled(db_session, game["id"], datetime(2024, 6, 7, 9, 0))
    assert cancelled["cancelled_at"] == "2024-06-07T09:00:00"
    reinstated = await data_service.set_game_cancelled(db_session, game["id"], None)
    assert reinstated["cancelled_at"] is None

    assert await data_service.delete_game(db_session, game["id"]) is True
    assert await data_service.get_game(db_session, game["id"]) is None


@pytest.mark.asyncio
async def test_rsvp_upsert_replaces_answer(db_session, team, players):
    game = await data_service.create_game(db_session, team["id"], opponent="Reds")

    first = await data_service.upsert_rsvp(db_session, game["id"], players["alex"], "yes")
    second = await data_service.upsert_rsvp(db_session, game["id"], players["alex"], "no")

    assert first["id"] == second["id"]
    assert second["value"] == "no"
    assert await count(db_session, Rsvp) == 1


@pytest.mark.asyncio
async def test_rsvp_rejects_other_values(db_session, team, players):
    game = await data_service.create_game(db_session, team["id"], opponent="Reds")
    with pytest.raises(ValueError):
        await data_service.upsert_rsvp(db_session, game["id"], players["alex"], "maybe")


@pytest.mark.asyncio
async def test_deleting_game_detaches_stats(db_session, team, players):
    game = await data_service.create_game(db_session, team["id"], opponent="Reds")
    entry = await data_service.add_stat_entry(db_session, players["alex"], "goal", game_id=game["id"])

    await data_service.delete_game(db_session, game["id"])

    result = await db_session.execute(
        select(StatEntry.game_id).where(StatEntry.id == entry["id"])
    )
    assert result.scalar_one() is None


# ============================================================================
# Seasons
# ============================================================================

@pytest.mark.asyncio
async def test_season_crud(db_session, team):
    spring = await data_service.create_season(db_session, team["id"], "Spring", date(2024, 3, 1), date(2024, 5, 31))
    # Overlap is allowed
    await data_service.create_season(db_session, team["id"], "Playoffs", date(2024, 5, 15), date(2024, 6, 15))

    assert [s["name"] for s in await data_service.list_seasons(db_session, team["id"])] == ["Spring", "Playoffs"]

    updated = await data_service.update_season(db_session, spring["id"], "Spring 24", date(2024, 3, 1), date(2024, 5, 30))
    assert updated["name"] == "Spring 24"
    assert updated["end_date"] == "2024-05-30"

    assert await data_service.delete_season(db_session, spring["id"]) is True


@pytest.mark.asyncio
async def test_season_end_before_start_rejected(db_session, team):
    with pytest.raises(ValueError):
        await data_service.create_season(db_session, team["id"], "Backwards", date(2024, 5, 1), date(2024, 4, 1))


# ============================================================================
# Pages
# ============================================================================

@pytest.mark.asyncio
async def test_stats_page_standings_and_flags(db_session, admin_user, subscribed_team, players):
    for _ in range(3):
        await data_service.add_stat_entry(db_session, players["alex"], "goal", timestamp=datetime(2024, 5, 1, 19, 0))
        await data_service.add_stat_entry(db_session, players["blair"], "goal", timestamp=datetime(2024, 5, 1, 19, 0))
    await data_service.add_stat_entry(db_session, players["alex"], "assist", timestamp=datetime(2024, 5, 1, 19, 0))
    for _ in range(2):
        await data_service.add_stat_entry(db_session, players["blair"], "assist", timestamp=datetime(2024, 5, 8, 19, 0))

    page = await data_service.get_team_stats_page(db_session, subscribed_team["slug"], user=admin_user)

    assert [row["name"] for row in page["standings"]] == ["Blair", "Alex"]
    assert [row["name"] for row in page["golden_boot"]] == ["Blair", "Alex"]
    assert page["day_matrix"]["days"] == ["2024-05-01", "2024-05-08"]
    assert [row["name"] for row in page["day_matrix"]["rows"]] == ["Blair", "Alex"]
    assert page["user_has_access"] is True
    assert page["has_active_subscription"] is True
    assert page["theme"]["primary"] == "bg-green-900"


@pytest.mark.asyncio
async def test_stats_page_edit_mode_keeps_name_order(db_session, team, players):
    await data_service.add_stat_entry(db_session, players["blair"], "goal")
    page = await data_service.get_team_stats_page(db_session, team["slug"], edit=True)
    assert [row["name"] for row in page["standings"]] == ["Alex", "Blair"]
    assert page["user_has_access"] is False


@pytest.mark.asyncio
async def test_stats_page_filters_by_season(db_session, team, players):
    season = await data_service.create_season(db_session, team["id"], "May", date(2024, 5, 1), date(2024, 5, 31))
    await data_service.add_stat_entry(db_session, players["alex"], "goal", timestamp=datetime(2024, 5, 10, 19, 0))
    await data_service.add_stat_entry(db_session, players["alex"], "goal", timestamp=datetime(2024, 6, 10, 19, 0))

    page = await data_service.get_team_stats_page(db_session, team["slug"], season_id=season["id"])
    alex = next(row for row in page["standings"] if row["name"] == "Alex")
    assert alex["goals"] == 1
    assert page["season"]["name"] == "May"


@pytest.mark.asyncio
async def test_stats_page_unknown_season_or_team(db_session, team):
    with pytest.raises(LookupError):
        await data_service.get_team_stats_page(db_session, team["slug"], season_id=9999)
    assert await data_service.get_team_stats_page(db_session, "no-such-team") is None


@pytest.mark.asyncio
async def test_games_page_partitions_and_tallies(db_session, team, players, other_user):
    past = await data_service.create_game(db_session, team["id"], "Reds", timestamp=datetime(2024, 5, 1, 19, 0))
    nxt = await data_service.create_game(db_session, team["id"], "Blues", timestamp=datetime(2024, 6, 8, 19, 0))
    later = await data_service.create_game(db_session, team["id"], "Golds", timestamp=datetime(2024, 6, 15, 19, 0))
    tbd = await data_service.create_game(db_session, team["id"], "Greys")
    await data_service.set_game_cancelled(db_session, past["id"], datetime(2024, 4, 30, 9, 0))

    # other_user plays as Alex
    db_session.add(
        UserInvite(
            token="t" * 32,
            player_id=players["alex"],
            email=other_user["email"],
            created_at=datetime(2024, 4, 1),
            accepted_at=datetime(2024, 4, 1),
            user_id=other_user["id"],
        )
    )
    await db_session.commit()
    await data_service.upsert_rsvp(db_session, nxt["id"], players["alex"], "yes")
    await data_service.add_stat_entry(db_session, players["blair"], "goal", game_id=past["id"])

    page = await data_service.get_team_games_page(
        db_session, team["slug"], user=other_user, now=datetime(2024, 6, 1, 12, 0)
    )

    assert [g["id"] for g in page["past"]] == [past["id"]]
    assert page["past"][0]["cancelled_at"] is not None
    assert page["past"][0]["stats"] == {"goals": 1, "assists": 0}
    assert page["next_game"]["id"] == nxt["id"]
    assert page["next_game"]["rsvps"]["yes"] == 1
    assert page["next_game"]["rsvps"]["no_response"] == 1
    assert page["next_game"]["my_rsvp"]["value"] == "yes"
    assert [g["id"] for g in page["upcoming"]] == [later["id"]]
    assert [g["id"] for g in page["unscheduled"]] == [tbd["id"]]
    assert page["linked_player_id"] == players["alex"]
    assert page["user_has_access"] is False


@pytest.mark.asyncio
async def test_roster_invite_status(db_session, admin_user, team):
    await data_service.create_player(db_session, team["id"], "Pending Pat", email="pat@example.com", inviter_id=admin_user["id"])
    await data_service.create_player(db_session, team["id"], "Solo Sam")

    roster = {p["name"]: p for p in await data_service.get_team_roster(db_session, team["id"])}
    assert roster["Pending Pat"]["invite_status"] == "pending"
    assert roster["Pending Pat"]["invite_email"] == "pat@example.com"
    assert roster["Solo Sam"]["invite_status"] is None


# ============================================================================
# Invites
# ============================================================================

@pytest.mark.asyncio
async def test_accept_invite_links_user(db_session, admin_user, other_user, team, players):
    invite = await data_service.create_invite(db_session, players["alex"], other_user["email"], admin_user["id"])

    accepted = await data_service.accept_invite(db_session, invite["id"], other_user["id"])

    assert accepted["user_id"] == other_user["id"]
    assert accepted["accepted_at"] is not None
    assert accepted["team"]["id"] == team["id"]
    assert accepted["inviter_name"] == admin_user["name"]
    assert await data_service.find_linked_player_id(db_session, other_user["id"], team["id"]) == players["alex"]

    # Accepting again as the same user is a no-op
    again = await data_service.accept_invite(db_session, invite["id"], other_user["id"])
    assert again["id"] == invite["id"]


@pytest.mark.asyncio
async def test_accepted_invite_cannot_be_taken_by_someone_else(db_session, admin_user, other_user, players):
    invite = await data_service.create_invite(db_session, players["alex"], other_user["email"], admin_user["id"])
    await data_service.accept_invite(db_session, invite["id"], other_user["id"])

    with pytest.raises(ConflictError):
        await data_service.accept_invite(db_session, invite["id"], admin_user["id"])


@pytest.mark.asyncio
async def test_player_links_to_at_most_one_user(db_session, admin_user, other_user, players):
    first = await data_service.create_invite(db_session, players["alex"], other_user["email"], admin_user["id"])
    second = await data_service.create_invite(db_session, players["alex"], "someone@example.com", admin_user["id"])
    await data_service.accept_invite(db_session, first["id"], other_user["id"])

    with pytest.raises(ConflictError):
        await data_service.accept_invite(db_session, second["id"], admin_user["id"])
    with pytest.raises(ConflictError):
        await data_service.create_invite(db_session, players["alex"], "third@example.com", admin_user["id"])


@pytest.mark.asyncio
async def test_accept_missing_invite(db_session, other_user):
    with pytest.raises(LookupError):
        await data_service.accept_invite(db_session, 9999, other_user["id"])


@pytest.mark.asyncio
async def test_invite_request_flow(db_session, admin_user, other_user, team, players):
    request = await data_service.create_invite_request(db_session, other_user["id"], team["id"])
    assert request["admin"]["email"] == admin_user["email"]
    assert request["team"]["id"] == team["id"]

    loaded = await data_service.get_invite_request(db_session, request["id"])
    assert loaded["user"]["email"] == other_user["email"]
    assert {p["id"] for p in loaded["available_players"]} == set(players.values())

    result = await data_service.accept_invite_request(
        db_session, request["id"], players["blair"], admin_user["id"]
    )
    assert result["requester_email"] == other_user["email"]
    assert await data_service.find_linked_player_id(db_session, other_user["id"], team["id"]) == players["blair"]

    with pytest.raises(ConflictError):
        await data_service.accept_invite_request(db_session, request["id"], players["blair"], admin_user["id"])


@pytest.mark.asyncio
async def test_invite_request_for_player_on_other_team(db_session, admin_user, other_user, team):
    request = await data_service.create_invite_request(db_session, other_user["id"], team["id"])
    other_team = await data_service.create_team(db_session, "Elsewhere", "elsewhere", admin_user["id"])
    outsider = await data_service.create_player(db_session, other_team["id"], "Outsider")

    with pytest.raises(ValueError):
        await data_service.accept_invite_request(
            db_session, request["id"], outsider["player"]["id"], admin_user["id"]
        )
    assert await count(db_session, UserInvite) == 0


@pytest.mark.asyncio
async def test_invite_request_for_missing_team(db_session, other_user):
    assert await data_service.create_invite_request(db_session, other_user["id"], 9999) is None


@pytest.mark.asyncio
async def test_accepted_invite_request_cannot_link_a_second_player(db_session, admin_user, other_user, team, players):
    request = await data_service.create_invite_request(db_session, other_user["id"], team["id"])
    await data_service.accept_invite_request(db_session, request["id"], players["alex"], admin_user["id"])

    with pytest.raises(ConflictError):
        await data_service.accept_invite_request(db_session, request["id"], players["blair"], admin_user["id"])

    assert await count(db_session, UserInvite) == 1
    roster = await data_service.get_team_roster(db_session, team["id"])
    blair = next(p for p in roster if p["id"] == players["blair"])
    assert blair["invite_status"] is None
    assert blair["linked_user_id"] is None
    assert await data_service.find_linked_player_id(db_session, other_user["id"], team["id"]) == players["alex"]
