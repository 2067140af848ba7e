"""
Pydantic models for API request/response validation.
"""

from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from teamstats.database.models import StatType, RsvpValue
from teamstats.utils.constants import TeamColor
from teamstats.utils.datetime_utils import parse_timestamp


def _parse_required_timestamp(value):
    if not isinstance(value, (str, datetime)):
        raise ValueError("timestamp must be an ISO 8601 string")
    return parse_timestamp(value)


def _parse_optional_timestamp(value):
    """Accept ISO strings (with or without offset), datetimes, empty strings and "null"."""
    if value is None or value == "" or value == "null":
        return None
    return _parse_required_timestamp(value)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    message: str


# ============================================================================
# Auth
# ============================================================================

class SignupRequest(BaseModel):
    """Request to sign up a new user."""

    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=8)
    repeat_password: str

    @model_validator(mode="after")
    def validate_passwords_match(self):
        """Ensure both password fields agree."""
        if self.password != self.repeat_password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    """Request to login with email and password."""

    email: str
    password: str


class UserResponse(BaseModel):
    """Public user data (never includes the password hash)."""

    id: int
    email: str
    name: str
    stripe_customer_id: Optional[str] = None
    created_at: Optional[str] = None


class MeResponse(BaseModel):
    user: UserResponse
    teams: List[dict]


# ============================================================================
# Teams and players
# ============================================================================

class CreateTeamRequest(BaseModel):
    """Request to create a team (and start its subscription checkout)."""

    name: str = Field(min_length=1)
    slug: str = Field(min_length=1, max_length=100)
    plan: str = "yearly"


class CheckSlugResponse(BaseModel):
    slug_is_available: bool


class UpdateTeamColorRequest(BaseModel):
    color: TeamColor


class CreatePlayerRequest(BaseModel):
    """Add a player to a roster; an email also sends an invite to claim it."""

    name: str = Field(min_length=1)
    email: Optional[str] = None

    @field_validator("email")
    @classmethod
    def blank_email_is_none(cls, v):
        return v.strip() or None if isinstance(v, str) else v


class InvitePlayerRequest(BaseModel):
    email: str = Field(min_length=3)


# ============================================================================
# Games and RSVPs
# ============================================================================

class GameRequest(BaseModel):
    """Create or replace a game. A missing timestamp means the time is TBD."""

    team_id: Optional[int] = None
    timestamp: Optional[datetime] = None
    opponent: str = Field(min_length=1)
    location: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_game_timestamp(cls, v):
        return _parse_optional_timestamp(v)


class CreateGameRequest(GameRequest):
    team_id: int


class CancelGameRequest(BaseModel):
    """Cancel with a timestamp, uncancel with null."""

    cancelled_at: Optional[datetime] = None

    @field_validator("cancelled_at", mode="before")
    @classmethod
    def parse_cancelled_at(cls, v):
        return _parse_optional_timestamp(v)


class RsvpRequest(BaseModel):
    value: RsvpValue


class ImportScheduleRequest(BaseModel):
    team_id: int
    schedule_url: str = Field(min_length=1)
    team_name: str = Field(min_length=1)


class ImportedGame(BaseModel):
    timestamp: Optional[datetime] = None
    opponent: str = Field(min_length=1)
    location: Optional[str] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_imported_timestamp(cls, v):
        return _parse_optional_timestamp(v)


class ConfirmScheduleRequest(BaseModel):
    team_id: int
    games: List[ImportedGame]


# ============================================================================
# Seasons
# ============================================================================

class SeasonRequest(BaseModel):
    """Season date range (both ends inclusive)."""

    name: str = Field(min_length=1)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def validate_date_order(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CreateSeasonRequest(SeasonRequest):
    team_id: int


# ============================================================================
# Stats
# ============================================================================

class StatEntryRequest(BaseModel):
    """One stat entry in a bulk create."""

    model_config = ConfigDict(populate_by_name=True)

    player_id: int = Field(alias="playerId")
    type: StatType
    timestamp: datetime
    game_id: Optional[int] = Field(default=None, alias="gameId")

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_stat_timestamp(cls, v):
        return _parse_required_timestamp(v)


class UpdateStatRequest(BaseModel):
    timestamp: datetime

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_stat_timestamp(cls, v):
        return _parse_required_timestamp(v)


class ParsePlayer(BaseModel):
    id: int
    name: str


class ParseStatsRequest(BaseModel):
    """Free text game summary to be turned into stat entries."""

    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(min_length=1)
    players: List[ParsePlayer] = Field(min_length=1)
    game_id: Optional[int] = Field(default=None, alias="gameId")
    timestamp: str = Field(min_length=1)


class ParsedStat(BaseModel):
    player_id: int
    type: StatType
    timestamp: str
    game_id: Optional[int] = None


# ============================================================================
# Invites
# ============================================================================

class AcceptInviteRequestRequest(BaseModel):
    player_id: int
