# calstep/core/utils/clock.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current instant as a UTC-aware datetime."""
    return datetime.now(timezone.utc)


def is_aware(value: datetime) -> bool:
    return value.tzinfo is not None and value.tzinfo.utcoffset(value) is not None


def to_utc(value: datetime) -> datetime:
    """
    Normalize an aware datetime to UTC.

    Raises:
        ValueError: If value is naive
    """
    if not is_aware(value):
        raise ValueError('datetime must be timezone-aware')
    return value.astimezone(timezone.utc)
