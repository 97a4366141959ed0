# backend/core/time_utils.py

"""
Time helpers.

Timestamps are persisted as UTC. Some drivers (SQLite) hand back naive
datetimes even for ``DateTime(timezone=True)`` columns, so every read path
normalizes through ``ensure_utc`` before doing arithmetic or serializing.
"""

from datetime import date, datetime, timezone
from typing import Annotated, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from pydantic import AfterValidator

from .config import settings

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def minutes_between(start: datetime, end: Optional[datetime] = None) -> int:
    """Whole minutes from ``start`` to ``end`` (default: now)."""
    end = ensure_utc(end) if end is not None else utc_now()
    return int((end - ensure_utc(start)).total_seconds() // 60)


def local_today(tz_name: Optional[str] = None) -> date:
    """
    Wall-clock date in the given IANA timezone.

    Shift dates are business dates: a floor opened at 00:30 local time
    belongs to the local day, not the UTC one.
    """
    name = tz_name or settings.default_timezone
    try:
        tz = ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using {settings.default_timezone}")
        tz = ZoneInfo(settings.default_timezone)
    return datetime.now(tz).date()


def isoformat(value: Optional[datetime]) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None


# Pydantic field type that always serializes with an explicit UTC offset
UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]
