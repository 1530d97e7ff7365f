import math
from datetime import datetime, timezone
from typing import NamedTuple


class RemainingTime(NamedTuple):
    hours: int
    minutes: int


def _as_datetime(value: datetime | str) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def remaining_time(expires_at: datetime | str, now: datetime | None = None) -> RemainingTime:
    """
    Whole hours and leftover minutes until `expires_at`.

    Both fields are clamped at zero, so an expired listing reads "0h 0m".
    """
    expires_at = _as_datetime(expires_at)
    now = _as_datetime(now) if now is not None else datetime.now(timezone.utc)

    seconds_left = (expires_at - now).total_seconds()
    total_minutes = max(0, math.floor(seconds_left / 60))

    return RemainingTime(hours=total_minutes // 60, minutes=total_minutes % 60)


def format_remaining(remaining: RemainingTime) -> str:
    return f"{remaining.hours}h {remaining.minutes}m"


def is_expired(expires_at: datetime | str, now: datetime | None = None) -> bool:
    now = _as_datetime(now) if now is not None else datetime.now(timezone.utc)
    return _as_datetime(expires_at) <= now
