"""Clock and timezone helpers shared by scheduling and reminders"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..config import DEFAULT_TIMEZONE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA zone, falling back to the default clinic zone"""
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def to_local(value: datetime, zone_name: Optional[str]) -> datetime:
    return ensure_utc(value).astimezone(get_zone(zone_name))


def parse_datetime(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing ``Z``. Naive input is assumed to be UTC.

    Raises:
        ValueError: If the value is not a valid ISO-8601 timestamp
    """
    if not value or not isinstance(value, str):
        raise ValueError("Invalid datetime")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_local(value: datetime, zone_name: Optional[str]) -> str:
    """Human readable local timestamp used in patient-facing messages"""
    return to_local(value, zone_name).strftime("%d/%m/%Y %H:%M")
