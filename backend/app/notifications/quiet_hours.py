"""
quiet_hours.py — Per-subscriber do-not-disturb evaluation.

The window is expressed in the subscriber's local wall-clock time, so
``now`` is first converted to the subscription's IANA timezone and then
reduced to minutes since midnight.

    Window kind     Condition                 Inside when
    ───────────     ─────────────────────     ─────────────────────────
    Same-day        start <= end (09–17)      start <= t <= end
    Overnight       start >  end (22–07)      t >= start  OR  t <= end

Both bounds are inclusive: a 07:00 update is still silenced by a window
ending at 07:00.
"""

from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from backend.app.notifications.models import QuietHours, Subscription


def parse_hhmm(value: str) -> int:
    """
    Convert "HH:MM" into minutes since midnight.

    Raises
    ------
    ValueError
        If the string is not a valid 24-hour clock time.
    """
    try:
        hours_str, minutes_str = value.strip().split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return hours * 60 + minutes


@lru_cache(maxsize=256)
def resolve_zone(name: str) -> ZoneInfo:
    """Cached IANA zone lookup; raises ValueError for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValueError(f"Unknown timezone '{name}'")


def in_window(minute_of_day: int, window: QuietHours) -> bool:
    start = parse_hhmm(window.start)
    end = parse_hhmm(window.end)
    if start <= end:
        return start <= minute_of_day <= end
    return minute_of_day >= start or minute_of_day <= end


def is_quiet_hours(subscription: Subscription, now: datetime) -> bool:
    """
    True if ``now`` falls inside the subscriber's quiet-hours window.

    Parameters
    ----------
    subscription : Subscription
    now : datetime
        Reference instant. Naive values are taken as UTC.
    """
    window = subscription.preferences.quiet_hours
    if not window.enabled:
        return False

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(resolve_zone(subscription.timezone))
    return in_window(local.hour * 60 + local.minute, window)
