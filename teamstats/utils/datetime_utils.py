"""
Datetime utility functions.

Game and stat timestamps are stored as naive team-local wall clock times
(SQLite has no timezone-aware column type). Values arriving with an offset
are converted into TEAM_TIMEZONE before the offset is dropped.
"""

import os
from datetime import date, datetime
from typing import Optional, Union
import pytz
from dotenv import load_dotenv

load_dotenv()

TEAM_TIMEZONE = os.getenv("TEAM_TIMEZONE", "America/Vancouver")


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def local_now(tz_name: Optional[str] = None) -> datetime:
    """Current wall clock time in the team timezone, without tzinfo."""
    tz = pytz.timezone(tz_name or TEAM_TIMEZONE)
    return datetime.now(tz).replace(tzinfo=None)


def to_local_naive(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """
    Normalize a datetime to the naive local form used in storage.

    Naive values are assumed to already be local. Aware values are converted
    into the team timezone first.
    """
    if value.tzinfo is None:
        return value
    tz = pytz.timezone(tz_name or TEAM_TIMEZONE)
    return value.astimezone(tz).replace(tzinfo=None)


def parse_timestamp(value: Union[str, datetime], tz_name: Optional[str] = None) -> datetime:
    """
    Parse an ISO 8601 string (with or without offset, "Z" allowed) into storage form.

    Raises:
        ValueError: If the string is not a valid ISO timestamp
    """
    if isinstance(value, datetime):
        return to_local_naive(value, tz_name)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_local_naive(datetime.fromisoformat(text), tz_name)


def day_key(value: Union[str, datetime, date]) -> str:
    """
    Calendar day ("YYYY-MM-DD") of a stored timestamp.

    Strings are read as written: the date portion before "T" (or a space)
    is the day, so an offset never moves an entry to a neighbouring day.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value.strip().replace(" ", "T").split("T")[0]


def isoformat_or_none(value: Optional[Union[datetime, date]]) -> Optional[str]:
    return value.isoformat() if value is not None else None
