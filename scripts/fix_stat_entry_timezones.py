#!/usr/bin/env python3
"""
One-off repair: stat entries written as UTC are re-expressed as local wall
clock time in the given zone.

Every row is rewritten in a single transaction; run it exactly once.

Usage:
    python scripts/fix_stat_entry_timezones.py [America/Vancouver]
"""

import asyncio
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

import pytz
from sqlalchemy import select

from teamstats.database.db import AsyncSessionLocal
from teamstats.database.models import StatEntry
from teamstats.utils.datetime_utils import to_local_naive

DEFAULT_ZONE = "America/Vancouver"


async def main(tz_name: str = DEFAULT_ZONE):
    try:
        pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        print(f"Unknown timezone: {tz_name}", file=sys.stderr)
        return 1

    async with AsyncSessionLocal() as session:
        result = await session.execute(select(StatEntry).order_by(StatEntry.id))
        entries = result.scalars().all()
        try:
            for entry in entries:
                utc_value = pytz.UTC.localize(entry.timestamp.replace(tzinfo=None))
                entry.timestamp = to_local_naive(utc_value, tz_name)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    print(f"Done: {len(entries)} stat entries moved to {tz_name}")
    return 0


if __name__ == "__main__":
    zone = sys.argv[1] if len(sys.argv) > 1 else DEFAULT_ZONE
    sys.exit(asyncio.run(main(zone)))
