"""
TeamStats API Server

FastAPI server for team pages, stat tracking, games, RSVPs, invites and billing.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware
import logging
import os
import uvicorn
from dotenv import load_dotenv
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from teamstats.api.routes import router, limiter as routes_limiter
from teamstats.database import db
from teamstats.models.schemas import HealthResponse
from teamstats.services.task_runner import get_task_runner
from teamstats.utils.constants import AUTH_SESSION_MAX_AGE

load_dotenv()

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

IS_PRODUCTION = os.getenv("ENV", "").lower() == "production"


def get_session_secret() -> str:
    """Cookie signing secret. Required in production."""
    secret = os.getenv("AUTH_SECRET")
    if secret:
        return secret
    if IS_PRODUCTION:
        raise RuntimeError("AUTH_SECRET environment variable is not set")
    logger.warning("AUTH_SECRET is not set; using an insecure development secret")
    return "teamstats-dev-secret"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up TeamStats API...")

    # Create tables that migrations have not created yet
    await db.init_database()
    logger.info("Database initialized")

    yield  # App is running

    # Shutdown
    logger.info("Shutting down TeamStats API...")

    # Let queued emails finish
    try:
        await get_task_runner().drain()
        logger.info("Background tasks drained")
    except Exception as e:
        logger.error(f"Error draining background tasks: {e}", exc_info=True)


app = FastAPI(
    title="TeamStats API",
    description="API for amateur sports team stats, schedules, RSVPs and subscriptions",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are a 400, not FastAPI's default 422."""
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


# Signed cookie session holding the logged-in user id
app.add_middleware(
    SessionMiddleware,
    secret_key=get_session_secret(),
    session_cookie="_session",
    max_age=AUTH_SESSION_MAX_AGE,
    same_site="lax",
    https_only=IS_PRODUCTION,
)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", message="API is running")


# Include API routes
app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
