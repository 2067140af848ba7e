"""
Constants used across the TeamStats system.
"""

import enum


class TeamColor(str, enum.Enum):
    """Palette a team can pick for its pages."""

    GRAY = "gray"
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"
    BLUE = "blue"
    PURPLE = "purple"
    PINK = "pink"


DEFAULT_TEAM_COLOR = TeamColor.GREEN

# Style tokens per team color. Every class name is spelled out so the
# frontend's CSS purge can see it; never build these by concatenation.
TEAM_THEMES = {
    TeamColor.GRAY: {
        "background": "bg-gray-50",
        "surface": "bg-gray-100",
        "primary": "bg-gray-900",
        "text": "text-gray-900",
        "border": "border-gray-200",
        "ring": "ring-gray-950",
    },
    TeamColor.RED: {
        "background": "bg-red-50",
        "surface": "bg-red-100",
        "primary": "bg-red-900",
        "text": "text-red-900",
        "border": "border-red-200",
        "ring": "ring-red-950",
    },
    TeamColor.ORANGE: {
        "background": "bg-orange-50",
        "surface": "bg-orange-100",
        "primary": "bg-orange-900",
        "text": "text-orange-900",
        "border": "border-orange-200",
        "ring": "ring-orange-950",
    },
    TeamColor.YELLOW: {
        "background": "bg-yellow-50",
        "surface": "bg-yellow-100",
        "primary": "bg-yellow-900",
        "text": "text-yellow-900",
        "border": "border-yellow-200",
        "ring": "ring-yellow-950",
    },
    TeamColor.GREEN: {
        "background": "bg-green-50",
        "surface": "bg-green-100",
        "primary": "bg-green-900",
        "text": "text-green-900",
        "border": "border-green-200",
        "ring": "ring-green-950",
    },
    TeamColor.BLUE: {
        "background": "bg-blue-50",
        "surface": "bg-blue-100",
        "primary": "bg-blue-900",
        "text": "text-blue-900",
        "border": "border-blue-200",
        "ring": "ring-blue-950",
    },
    TeamColor.PURPLE: {
        "background": "bg-purple-50",
        "surface": "bg-purple-100",
        "primary": "bg-purple-900",
        "text": "text-purple-900",
        "border": "border-purple-200",
        "ring": "ring-purple-950",
    },
    TeamColor.PINK: {
        "background": "bg-pink-50",
        "surface": "bg-pink-100",
        "primary": "bg-pink-900",
        "text": "text-pink-900",
        "border": "border-pink-200",
        "ring": "ring-pink-950",
    },
}


def theme_for(color: str) -> dict:
    """Look up style tokens for a stored color, falling back to the default palette."""
    try:
        return TEAM_THEMES[TeamColor(color)]
    except ValueError:
        return TEAM_THEMES[DEFAULT_TEAM_COLOR]


# Subscription statuses that close the feature gate. Anything else is open.
INACTIVE_SUBSCRIPTION_STATUSES = frozenset({"canceled", "unpaid"})

# Session cookie lifetimes (seconds)
AUTH_SESSION_MAX_AGE = 60 * 60 * 24 * 30  # 30 days
GUEST_ALERT_COOKIE_MAX_AGE = 300  # 5 minutes

INVITE_TOKEN_BYTES = 16
