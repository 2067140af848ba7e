"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, constants) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Shared constants
# ---------------------------------------------------------------------------
INVALID_CREDENTIALS_RESPONSE = HTTPException(
    status_code=401, detail="Invalid email or password"
)

# Session keys for an invite (or invite request) started before logging in
PENDING_INVITE_ID = "invite_id"
PENDING_INVITE_TOKEN = "invite_token"
PENDING_INVITE_REQUEST_TEAM_ID = "invite_request_team_id"

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from teamstats.api.routes.auth import router as auth_router
from teamstats.api.routes.teams import router as teams_router
from teamstats.api.routes.players import router as players_router
from teamstats.api.routes.games import router as games_router
from teamstats.api.routes.seasons import router as seasons_router
from teamstats.api.routes.stats import router as stats_router
from teamstats.api.routes.invites import router as invites_router
from teamstats.api.routes.schedule import router as schedule_router
from teamstats.api.routes.billing import router as billing_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(teams_router)
router.include_router(players_router)
router.include_router(games_router)
router.include_router(seasons_router)
router.include_router(stats_router)
router.include_router(invites_router)
router.include_router(schedule_router)
router.include_router(billing_router)
