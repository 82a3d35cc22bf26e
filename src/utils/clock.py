# src/utils/clock.py
from datetime import datetime, timezone
from typing import Callable, Optional

# Every expiry decision takes "now" from a Clock so lapse is a pure function
# of stored state and the time the caller observes it.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; all stored times are UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
