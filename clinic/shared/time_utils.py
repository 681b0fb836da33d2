"""Time helpers. Stored datetimes are naive UTC; display values use the clinic zone."""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ..config import CLINIC_TIMEZONE

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clinic_zone() -> ZoneInfo:
    return ZoneInfo(CLINIC_TIMEZONE)


def parse_provider_timestamp(value: Optional[str]) -> datetime:
    """
    Parse an ISO 8601 timestamp from a provider payload into naive UTC.

    Raises:
        ValueError: If the value is missing or not a valid timestamp
    """
    if not value:
        raise ValueError("Missing start time")
    if not isinstance(value, str):
        raise ValueError(f"Start time must be an ISO 8601 string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def format_clinic_time(moment: datetime) -> str:
    """Render a naive UTC instant as 24-hour HH:MM in the clinic zone"""
    local = moment.replace(tzinfo=timezone.utc).astimezone(clinic_zone())
    return local.strftime("%H:%M")


def format_clinic_date(moment: Optional[datetime]) -> str:
    if moment is None:
        return "an unscheduled date"
    local = moment.replace(tzinfo=timezone.utc).astimezone(clinic_zone())
    return local.strftime("%Y-%m-%d")


def combine_clinic_datetime(day: date, hhmm: str) -> datetime:
    """Combine a clinic-local day and HH:MM into naive UTC"""
    if not TIME_PATTERN.match(hhmm):
        raise ValueError("Time must be in HH:MM format")
    hours, minutes = (int(part) for part in hhmm.split(":"))
    local = datetime.combine(day, time(hours, minutes), tzinfo=clinic_zone())
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def clinic_day_range(day: date) -> tuple[datetime, datetime]:
    """Naive UTC [start, end) bounds of a clinic-local calendar day"""
    start = datetime.combine(day, time.min, tzinfo=clinic_zone())
    end = start + timedelta(days=1)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )
