"""
API route tests.
Service calls are mocked so these exercise routing, session auth, the access
and subscription checks, and status code mapping.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from teamstats.api import auth_dependencies
from teamstats.api.main import app
from teamstats.api.routes import stats as stats_routes
from teamstats.database.db import get_db_session
from teamstats.services import auth_service, billing_service, data_service, llm_service, user_service

USER = {
    "id": 1,
    "email": "coach@example.com",
    "name": "Coach Carter",
    "password_hash": "hash",
    "stripe_customer_id": None,
    "created_at": "2024-01-01T00:00:00",
}
TEAM = {"id": 10, "slug": "green-machine", "name": "Green Machine", "color": "green", "created_at": None}
GAME = {"id": 20, "team_id": 10, "timestamp": None, "opponent": "Reds", "location": None, "cancelled_at": None}


# ============================================================================
# Test Fixtures and Helpers
# ============================================================================

@pytest.fixture
def client():
    """Test client whose requests never open a real database session."""
    async def fake_db_session():
        yield None

    app.dependency_overrides[get_db_session] = fake_db_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def known_user(monkeypatch):
    """USER exists and logs in with "password123"."""
    async def fake_get_user_by_email(session, email):
        return USER if email == USER["email"] else None

    async def fake_get_user_by_id(session, user_id):
        return USER if user_id == USER["id"] else None

    monkeypatch.setattr(user_service, "get_user_by_email", fake_get_user_by_email)
    monkeypatch.setattr(user_service, "get_user_by_id", fake_get_user_by_id)
    monkeypatch.setattr(auth_service, "verify_password", lambda password, password_hash: password == "password123")
    return USER


@pytest.fixture
def logged_in(client, known_user):
    response = client.post("/api/auth/login", json={"email": USER["email"], "password": "password123"})
    assert response.status_code == 200
    return client


def set_access(monkeypatch, member=True, subscribed=True):
    async def fake_access(session, user, team_id):
        return member

    async def fake_subscription(session, team_id):
        return subscribed

    monkeypatch.setattr(auth_dependencies, "has_access_to_team", fake_access)
    monkeypatch.setattr(auth_dependencies, "is_team_subscription_active", fake_subscription)


def returns(value):
    async def fake(*args, **kwargs):
        return value
    return fake


def raises(exc):
    async def fake(*args, **kwargs):
        raise exc
    return fake


# ============================================================================
# Auth Endpoints Tests
# ============================================================================

class TestAuthEndpoints:
    """Tests for signup, login, logout and the current user."""

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "message": "API is running"}

    def test_login_sets_session(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_user_teams", returns([TEAM]))
        response = logged_in.get("/api/auth/me")
        assert response.status_code == 200
        body = response.json()
        assert body["user"]["email"] == USER["email"]
        assert "password_hash" not in body["user"]
        assert body["teams"] == [TEAM]

    def test_login_wrong_password(self, client, known_user):
        response = client.post("/api/auth/login", json={"email": USER["email"], "password": "nope"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_login_unknown_email(self, client, known_user):
        response = client.post("/api/auth/login", json={"email": "who@example.com", "password": "password123"})
        assert response.status_code == 401

    def test_me_requires_session(self, client):
        assert client.get("/api/auth/me").status_code == 401

    def test_logout_clears_session(self, logged_in):
        assert logged_in.post("/api/auth/logout").status_code == 200
        assert logged_in.get("/api/auth/me").status_code == 401

    def test_signup_password_mismatch_is_400(self, client):
        response = client.post(
            "/api/auth/signup",
            json={"name": "New", "email": "new@example.com", "password": "password123", "repeat_password": "password124"},
        )
        assert response.status_code == 400

    def test_signup_existing_email(self, client, known_user):
        response = client.post(
            "/api/auth/signup",
            json={"name": "Dup", "email": USER["email"], "password": "password123", "repeat_password": "password123"},
        )
        assert response.status_code == 400

    def test_signup_logs_in(self, client, monkeypatch):
        created = {}

        async def fake_get_user_by_email(session, email):
            return None

        async def fake_create_user(session, name, email, password_hash):
            created.update(name=name, email=email, password_hash=password_hash)
            return 2

        async def fake_get_user_by_id(session, user_id):
            return {**USER, "id": 2, "email": created["email"], "name": created["name"]} if user_id == 2 else None

        monkeypatch.setattr(user_service, "get_user_by_email", fake_get_user_by_email)
        monkeypatch.setattr(user_service, "create_user", fake_create_user)
        monkeypatch.setattr(user_service, "get_user_by_id", fake_get_user_by_id)
        monkeypatch.setattr(data_service, "get_user_teams", returns([]))

        response = client.post(
            "/api/auth/signup",
            json={"name": "New", "email": " New@Example.com ", "password": "password123", "repeat_password": "password123"},
        )
        assert response.status_code == 200
        assert created["email"] == "new@example.com"
        assert created["password_hash"] != "password123"
        assert response.json()["accepted_invite"] is None
        assert client.get("/api/auth/me").json()["user"]["id"] == 2

    def test_dismiss_guest_alert_sets_cookie(self, client):
        response = client.post("/api/dismiss-guest-user-alert")
        assert response.status_code == 200
        assert "guest_user_alert_dismissed" in response.headers["set-cookie"]
        assert "Max-Age=300" in response.headers["set-cookie"]


# ============================================================================
# Access control and subscription gate
# ============================================================================

class TestGameEndpoints:
    """401 / 404 / 403 / 402 ordering on a gated write."""

    PAYLOAD = {"team_id": 10, "opponent": "Reds", "timestamp": "2024-06-08T19:00:00"}

    def test_requires_login(self, client):
        assert client.post("/api/games", json=self.PAYLOAD).status_code == 401

    def test_unknown_team(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_team", returns(None))
        assert logged_in.post("/api/games", json=self.PAYLOAD).status_code == 404

    def test_non_member_forbidden(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_team", returns(TEAM))
        set_access(monkeypatch, member=False)
        assert logged_in.post("/api/games", json=self.PAYLOAD).status_code == 403

    def test_inactive_subscription_is_402(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_team", returns(TEAM))
        set_access(monkeypatch, member=True, subscribed=False)
        assert logged_in.post("/api/games", json=self.PAYLOAD).status_code == 402

    def test_create_game(self, logged_in, monkeypatch):
        calls = {}

        async def fake_create_game(session, team_id, opponent, timestamp=None, location=None):
            calls.update(team_id=team_id, opponent=opponent, timestamp=timestamp)
            return GAME

        monkeypatch.setattr(data_service, "get_team", returns(TEAM))
        monkeypatch.setattr(data_service, "create_game", fake_create_game)
        set_access(monkeypatch)

        response = logged_in.post("/api/games", json=self.PAYLOAD)
        assert response.status_code == 200
        assert response.json() == GAME
        assert calls["team_id"] == 10
        assert calls["timestamp"].isoformat() == "2024-06-08T19:00:00"

    def test_missing_opponent_is_400(self, logged_in):
        response = logged_in.post("/api/games", json={"team_id": 10})
        assert response.status_code == 400
        errors = response.json()["detail"]
        assert isinstance(errors, list)
        assert ["body", "opponent"] in [e["loc"] for e in errors]
        assert errors[0]["type"] == "missing"

    def test_rsvp_without_linked_player_is_404(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_game", returns(GAME))
        monkeypatch.setattr(data_service, "find_linked_player_id", returns(None))
        response = logged_in.post("/api/games/20/rsvps", json={"value": "yes"})
        assert response.status_code == 404

    def test_rsvp_upserts_for_linked_player(self, logged_in, monkeypatch):
        seen = {}

        async def fake_upsert(session, game_id, player_id, value):
            seen.update(game_id=game_id, player_id=player_id, value=value)
            return {"id": 1, "game_id": game_id, "player_id": player_id, "value": value}

        monkeypatch.setattr(data_service, "get_game", returns(GAME))
        monkeypatch.setattr(data_service, "find_linked_player_id", returns(5))
        monkeypatch.setattr(data_service, "upsert_rsvp", fake_upsert)
        set_access(monkeypatch, member=False, subscribed=True)

        response = logged_in.post("/api/games/20/rsvps", json={"value": "no"})
        assert response.status_code == 200
        assert seen == {"game_id": 20, "player_id": 5, "value": "no"}

    def test_rsvp_value_must_be_yes_or_no(self, logged_in):
        assert logged_in.post("/api/games/20/rsvps", json={"value": "maybe"}).status_code == 400


class TestPlayerEndpoints:
    def test_quick_goal_is_not_gated(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_player", returns({"id": 5, "team_id": 10, "name": "Alex"}))
        monkeypatch.setattr(data_service, "add_stat_entry", returns({"id": 1, "type": "goal"}))
        set_access(monkeypatch, member=True, subscribed=False)

        response = logged_in.post("/api/players/5/goals")
        assert response.status_code == 200
        assert response.json()["type"] == "goal"

    def test_destroy_latest_requires_access(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_player", returns({"id": 5, "team_id": 10, "name": "Alex"}))
        set_access(monkeypatch, member=False)
        assert logged_in.post("/api/players/5/assists/destroy_latest").status_code == 403

    def test_unknown_player(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_player", returns(None))
        assert logged_in.delete("/api/players/5").status_code == 404


class TestStatsEndpoints:
    def test_bulk_stats_for_inaccessible_player(self, logged_in, monkeypatch):
        monkeypatch.setattr(stats_routes, "accessible_player_teams", returns({5: 10}))
        response = logged_in.post(
            "/api/stats",
            json=[
                {"playerId": 5, "type": "goal", "timestamp": "2024-05-01T19:00:00"},
                {"playerId": 6, "type": "goal", "timestamp": "2024-05-01T19:00:00"},
            ],
        )
        assert response.status_code == 403

    def test_bulk_stats_gated(self, logged_in, monkeypatch):
        monkeypatch.setattr(stats_routes, "accessible_player_teams", returns({5: 10}))
        set_access(monkeypatch, subscribed=False)
        response = logged_in.post(
            "/api/stats", json=[{"playerId": 5, "type": "goal", "timestamp": "2024-05-01T19:00:00"}]
        )
        assert response.status_code == 402

    def test_bulk_stats_reject_game_from_other_team(self, logged_in, monkeypatch):
        monkeypatch.setattr(stats_routes, "accessible_player_teams", returns({5: 10}))
        monkeypatch.setattr(data_service, "get_game", returns({**GAME, "team_id": 99}))
        set_access(monkeypatch)
        response = logged_in.post(
            "/api/stats",
            json=[{"playerId": 5, "type": "goal", "timestamp": "2024-05-01T19:00:00", "gameId": 20}],
        )
        assert response.status_code == 400

    def test_parse_stats_upstream_error_is_500(self, logged_in, monkeypatch):
        monkeypatch.setattr(stats_routes, "accessible_player_teams", returns({5: 10}))
        monkeypatch.setattr(llm_service, "parse_stats_text", raises(llm_service.LLMServiceError("bad output")))
        set_access(monkeypatch)
        response = logged_in.post(
            "/api/parse-stats",
            json={"text": "Alex scored", "players": [{"id": 5, "name": "Alex"}], "timestamp": "2024-05-01T19:00:00"},
        )
        assert response.status_code == 500

    def test_parse_stats(self, logged_in, monkeypatch):
        parsed = [{"player_id": 5, "type": "goal", "timestamp": "2024-05-01T19:00:00", "game_id": None}]
        monkeypatch.setattr(stats_routes, "accessible_player_teams", returns({5: 10}))
        monkeypatch.setattr(llm_service, "parse_stats_text", returns(parsed))
        set_access(monkeypatch)
        response = logged_in.post(
            "/api/parse-stats",
            json={"text": "Alex scored", "players": [{"id": 5, "name": "Alex"}], "timestamp": "2024-05-01T19:00:00"},
        )
        assert response.status_code == 200
        assert response.json() == parsed


# ============================================================================
# Team pages and creation
# ============================================================================

class TestTeamEndpoints:
    def test_team_page_is_public(self, client, monkeypatch):
        monkeypatch.setattr(data_service, "get_team_stats_page", returns({"team": TEAM, "standings": []}))
        response = client.get("/api/teams/green-machine")
        assert response.status_code == 200
        assert response.json()["team"]["slug"] == "green-machine"

    def test_unknown_team_page(self, client, monkeypatch):
        monkeypatch.setattr(data_service, "get_team_stats_page", returns(None))
        assert client.get("/api/teams/nope").status_code == 404

    def test_unknown_season(self, client, monkeypatch):
        monkeypatch.setattr(data_service, "get_team_stats_page", raises(LookupError("Season 3 not found")))
        assert client.get("/api/teams/green-machine?season_id=3").status_code == 404

    def test_check_slug(self, client, monkeypatch):
        monkeypatch.setattr(data_service, "slug_available", returns(True))
        assert client.get("/api/check-slug?slug=new-team").json() == {"slug_is_available": True}

    def test_create_team_invalid_plan(self, logged_in):
        response = logged_in.post("/api/teams", json={"name": "New", "slug": "new", "plan": "monthly"})
        assert response.status_code == 400

    def test_create_team_slug_taken(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "create_team", raises(data_service.ConflictError("Slug new is already taken")))
        response = logged_in.post("/api/teams", json={"name": "New", "slug": "new"})
        assert response.status_code == 409

    def test_create_team_redirects_to_checkout(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "create_team", returns(TEAM))
        monkeypatch.setattr(billing_service, "create_checkout_session", returns("https://checkout.stripe.com/c/pay_1"))
        response = logged_in.post(
            "/api/teams", json={"name": "Green Machine", "slug": "green-machine"}, follow_redirects=False
        )
        assert response.status_code == 303
        assert response.headers["location"] == "https://checkout.stripe.com/c/pay_1"

    def test_roster_requires_membership(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_team_by_slug", returns(TEAM))
        set_access(monkeypatch, member=False)
        assert logged_in.get("/api/teams/green-machine/players").status_code == 403

    def test_color_must_be_in_palette(self, logged_in):
        assert logged_in.patch("/api/teams/10/color", json={"color": "plaid"}).status_code == 400


# ============================================================================
# Invites
# ============================================================================

class TestInviteEndpoints:
    INVITE = {
        "id": 3,
        "token": "tok",
        "user_id": None,
        "team": TEAM,
        "inviter_name": "Coach Carter",
    }

    def test_bad_token(self, client, monkeypatch):
        monkeypatch.setattr(data_service, "get_invite", returns(self.INVITE))
        assert client.get("/api/invites/3?token=wrong").status_code == 401

    def test_unknown_invite(self, client, monkeypatch):
        monkeypatch.setattr(data_service, "get_invite", returns(None))
        assert client.get("/api/invites/3?token=tok").status_code == 404

    def test_anonymous_invite_is_completed_after_login(self, client, known_user, monkeypatch):
        accepted = {}

        async def fake_accept(session, invite_id, user_id):
            accepted.update(invite_id=invite_id, user_id=user_id)
            return {**self.INVITE, "user_id": user_id}

        monkeypatch.setattr(data_service, "get_invite", returns(self.INVITE))
        monkeypatch.setattr(data_service, "accept_invite", fake_accept)

        assert client.get("/api/invites/3?token=tok").status_code == 401

        response = client.post("/api/auth/login", json={"email": USER["email"], "password": "password123"})
        assert response.status_code == 200
        assert response.json()["accepted_invite"] == TEAM
        assert accepted == {"invite_id": 3, "user_id": USER["id"]}

    def test_invite_conflict(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_invite", returns(self.INVITE))
        monkeypatch.setattr(data_service, "accept_invite", raises(data_service.ConflictError("taken")))
        assert logged_in.get("/api/invites/3?token=tok").status_code == 409

    def test_pending_invite_request_for_team_without_admin_does_not_block_login(self, client, known_user, monkeypatch):
        monkeypatch.setattr(
            data_service,
            "create_invite_request",
            raises(data_service.MissingTeamAdminError("No team user for team 5")),
        )

        assert client.get("/api/request-invite?team_id=5").status_code == 401

        for _ in range(2):
            response = client.post("/api/auth/login", json={"email": USER["email"], "password": "password123"})
            assert response.status_code == 200
            assert response.json()["requested_team"] is None


# ============================================================================
# Billing
# ============================================================================

class TestBillingEndpoints:
    def test_webhook_bad_signature(self, client, monkeypatch):
        def fake_verify(payload, signature):
            raise billing_service.WebhookSignatureError("Invalid signature")

        monkeypatch.setattr(billing_service, "verify_webhook", fake_verify)
        response = client.post("/api/stripe-webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=x"})
        assert response.status_code == 400

    def test_webhook_handled(self, client, monkeypatch):
        monkeypatch.setattr(billing_service, "verify_webhook", lambda payload, signature: {"type": "invoice.paid"})
        monkeypatch.setattr(billing_service, "handle_stripe_event", returns(True))
        response = client.post("/api/stripe-webhook", content=b"{}", headers={"stripe-signature": "sig"})
        assert response.status_code == 200
        assert response.json() == {"received": True, "handled": True}

    def test_webhook_missing_membership_is_not_swallowed(self, client, monkeypatch):
        monkeypatch.setattr(billing_service, "verify_webhook", lambda payload, signature: {"type": "invoice.paid"})
        monkeypatch.setattr(
            billing_service,
            "handle_stripe_event",
            raises(billing_service.SubscriptionInvariantError("No team user found for team 10")),
        )
        with pytest.raises(billing_service.SubscriptionInvariantError):
            client.post("/api/stripe-webhook", content=b"{}", headers={"stripe-signature": "sig"})

    def test_manage_billing_without_customer(self, logged_in):
        assert logged_in.get("/api/manage-billing").status_code == 401


# ============================================================================
# Schedule import
# ============================================================================

class TestScheduleEndpoints:
    PAYLOAD = {"team_id": 10, "schedule_url": "https://league.example.com/schedule", "team_name": "Green Machine"}

    def test_fetch_failure_is_500(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_team", returns(TEAM))
        monkeypatch.setattr(llm_service, "fetch_schedule_html", raises(httpx.ConnectError("connection refused")))
        set_access(monkeypatch)
        assert logged_in.post("/api/import-schedule", json=self.PAYLOAD).status_code == 500

    def test_import_is_gated(self, logged_in, monkeypatch):
        monkeypatch.setattr(data_service, "get_team", returns(TEAM))
        set_access(monkeypatch, subscribed=False)
        assert logged_in.post("/api/import-schedule", json=self.PAYLOAD).status_code == 402

    def test_proposed_games_are_returned(self, logged_in, monkeypatch):
        games = [{"timestamp": "2024-06-08T19:00:00", "opponent": "Reds", "location": "Field 2"}]
        monkeypatch.setattr(data_service, "get_team", returns(TEAM))
        monkeypatch.setattr(llm_service, "fetch_schedule_html", returns("<table></table>"))
        monkeypatch.setattr(llm_service, "parse_schedule_html", returns(games))
        set_access(monkeypatch)
        response = logged_in.post("/api/import-schedule", json=self.PAYLOAD)
        assert response.status_code == 200
        assert response.json() == {"games": games}
