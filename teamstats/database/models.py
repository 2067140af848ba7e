"""
SQLAlchemy ORM models for the TeamStats system.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from teamstats.database.db import Base
from teamstats.utils.constants import TeamColor, DEFAULT_TEAM_COLOR


class StatType(str, enum.Enum):
    """Stat entry type enum."""

    GOAL = "goal"
    ASSIST = "assist"


class RsvpValue(str, enum.Enum):
    """RSVP response enum."""

    YES = "yes"
    NO = "no"


def _in_enum(column: str, enum_cls) -> str:
    return f"{column} IN ({', '.join(repr(e.value) for e in enum_cls)})"


class User(Base):
    """User accounts with email/password authentication."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    stripe_customer_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    team_users = relationship("TeamUser", back_populates="user", cascade="all, delete-orphan")
    received_invites = relationship(
        "UserInvite", foreign_keys="UserInvite.user_id", back_populates="user"
    )

    __table_args__ = (Index("idx_users_email", "email"),)


class Team(Base):
    """Teams. The slug is the public URL segment and never changes."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String(100), nullable=False, unique=True)
    name = Column(String, nullable=False)
    color = Column(
        String(20),
        default=DEFAULT_TEAM_COLOR.value,
        nullable=False,
        server_default=DEFAULT_TEAM_COLOR.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    team_users = relationship(
        "TeamUser", back_populates="team", cascade="all, delete-orphan", order_by="TeamUser.id"
    )
    players = relationship(
        "Player", back_populates="team", cascade="all, delete-orphan", order_by="Player.name"
    )
    games = relationship(
        "Game", back_populates="team", cascade="all, delete-orphan", order_by="Game.timestamp"
    )
    seasons = relationship(
        "Season", back_populates="team", cascade="all, delete-orphan", order_by="Season.start_date"
    )
    subscriptions = relationship(
        "TeamSubscription",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by="TeamSubscription.id.desc()",
    )

    @property
    def subscription(self):
        """Most recently written subscription row, or None."""
        return self.subscriptions[0] if self.subscriptions else None

    __table_args__ = (
        CheckConstraint(_in_enum("color", TeamColor), name="check_team_color_valid"),
        Index("idx_teams_slug", "slug", unique=True),
    )


class TeamUser(Base):
    """Join table (User ↔ Team). A row grants the user admin access to the team."""

    __tablename__ = "teams_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    team = relationship("Team", back_populates="team_users")
    user = relationship("User", back_populates="team_users")

    __table_args__ = (
        UniqueConstraint("team_id", "user_id"),
        Index("idx_teams_users_team", "team_id"),
        Index("idx_teams_users_user", "user_id"),
    )


class Player(Base):
    """Roster slots. Linked to a user through an accepted invite."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)

    # Relationships
    team = relationship("Team", back_populates="players")
    stat_entries = relationship(
        "StatEntry", back_populates="player", cascade="all, delete-orphan", order_by="StatEntry.id"
    )
    rsvps = relationship("Rsvp", back_populates="player", cascade="all, delete-orphan")
    invites = relationship(
        "UserInvite", back_populates="player", cascade="all, delete-orphan", order_by="UserInvite.id"
    )

    @property
    def accepted_invite(self):
        for invite in self.invites:
            if invite.accepted_at is not None:
                return invite
        return None

    __table_args__ = (Index("idx_players_team", "team_id"),)


class UserInvite(Base):
    """Token invites linking a user to a player.

    A player has at most one accepted invite; unaccepted invites may be re-sent.
    """

    __tablename__ = "user_invites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    token = Column(String(64), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    inviter_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    email = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Relationships
    player = relationship("Player", back_populates="invites")
    inviter = relationship("User", foreign_keys=[inviter_id])
    user = relationship("User", foreign_keys=[user_id], back_populates="received_invites")

    __table_args__ = (
        Index("idx_user_invites_player", "player_id"),
        Index("idx_user_invites_user", "user_id"),
    )


class UserInviteRequest(Base):
    """A user's request to join a team, resolved by an admin to a specific player."""

    __tablename__ = "user_invite_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(64), nullable=False)
    created_at = Column(DateTime, nullable=False)
    accepted_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User")
    team = relationship("Team")

    __table_args__ = (Index("idx_user_invite_requests_team", "team_id"),)


class Game(Base):
    """Scheduled games. A null timestamp means the time is TBD."""

    __tablename__ = "games"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    timestamp = Column(DateTime, nullable=True)  # team-local wall clock time
    opponent = Column(String, nullable=False)
    location = Column(String, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    # Relationships
    team = relationship("Team", back_populates="games")
    rsvps = relationship("Rsvp", back_populates="game", cascade="all, delete-orphan")
    stat_entries = relationship("StatEntry", back_populates="game")

    __table_args__ = (Index("idx_games_team_timestamp", "team_id", "timestamp"),)


class Season(Base):
    """Named date ranges used to filter games and stats. Overlap is allowed."""

    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # Relationships
    team = relationship("Team", back_populates="seasons")

    __table_args__ = (Index("idx_seasons_team", "team_id"),)


class Rsvp(Base):
    """A player's yes/no for a game. One row per (game, player)."""

    __tablename__ = "rsvps"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    value = Column(String(3), nullable=False)

    # Relationships
    game = relationship("Game", back_populates="rsvps")
    player = relationship("Player", back_populates="rsvps")

    __table_args__ = (
        UniqueConstraint("game_id", "player_id", name="uq_rsvps_game_player"),
        CheckConstraint(_in_enum("value", RsvpValue), name="check_rsvp_value_valid"),
    )


class StatEntry(Base):
    """A single goal or assist. Aggregates are always computed on read."""

    __tablename__ = "stat_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    player_id = Column(Integer, ForeignKey("players.id", ondelete="CASCADE"), nullable=False)
    timestamp = Column(DateTime, nullable=False)  # team-local wall clock time
    type = Column(String(10), nullable=False)
    game_id = Column(Integer, ForeignKey("games.id", ondelete="SET NULL"), nullable=True)

    # Relationships
    player = relationship("Player", back_populates="stat_entries")
    game = relationship("Game", back_populates="stat_entries")

    __table_args__ = (
        CheckConstraint(_in_enum("type", StatType), name="check_stat_type_valid"),
        Index("idx_stat_entries_player", "player_id"),
        Index("idx_stat_entries_game", "game_id"),
    )


class TeamSubscription(Base):
    """Mirror of a team's Stripe subscription, written by the webhook."""

    __tablename__ = "team_subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    stripe_subscription_id = Column(String, nullable=False, unique=True)
    status = Column(String(50), nullable=False)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    period_end = Column(Integer, nullable=True)  # unix seconds, as Stripe reports it

    # Relationships
    team = relationship("Team", back_populates="subscriptions")

    __table_args__ = (Index("idx_team_subscriptions_team", "team_id"),)
