"""
test_quiet_hours.py — Tests for per-subscriber quiet-hours evaluation.

Covers:
    • HH:MM parsing and validation
    • Same-day and overnight windows (inclusive bounds)
    • Timezone conversion of the reference instant
    • Disabled windows

Run with:
    pytest tests/test_quiet_hours.py -v
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from backend.app.notifications.models import (
    ContactInfo,
    NotificationPreferences,
    QuietHours,
    Subscription,
)
from backend.app.notifications.quiet_hours import (
    in_window,
    is_quiet_hours,
    parse_hhmm,
    resolve_zone,
)


def _make_subscription(
    start: str = "22:00",
    end: str = "07:00",
    enabled: bool = True,
    tz: str = "UTC",
) -> Subscription:
    return Subscription(
        incident_id="42",
        contact=ContactInfo(email="citizen@example.rw"),
        preferences=NotificationPreferences(
            quiet_hours=QuietHours(enabled=enabled, start=start, end=end),
        ),
        timezone=tz,
    )


def _utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 6, 1, hour, minute, tzinfo=timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════════

class TestParseHHMM:

    def test_midnight(self):
        assert parse_hhmm("00:00") == 0

    def test_evening(self):
        assert parse_hhmm("22:30") == 22 * 60 + 30

    def test_single_digit_hour(self):
        assert parse_hhmm("7:05") == 7 * 60 + 5

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "", "12", None])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_hhmm(value)


class TestResolveZone:

    def test_known_zone(self):
        assert resolve_zone("Africa/Kigali").key == "Africa/Kigali"

    def test_unknown_zone(self):
        with pytest.raises(ValueError, match="Unknown timezone"):
            resolve_zone("Mars/Olympus_Mons")


# ═══════════════════════════════════════════════════════════════════════════
# Window arithmetic
# ═══════════════════════════════════════════════════════════════════════════

class TestInWindow:

    def test_same_day_inside(self):
        assert in_window(parse_hhmm("12:00"), QuietHours(True, "09:00", "17:00"))

    def test_same_day_outside(self):
        assert not in_window(parse_hhmm("18:00"), QuietHours(True, "09:00", "17:00"))

    def test_same_day_bounds_inclusive(self):
        window = QuietHours(True, "09:00", "17:00")
        assert in_window(parse_hhmm("09:00"), window)
        assert in_window(parse_hhmm("17:00"), window)

    def test_overnight_late_evening(self):
        assert in_window(parse_hhmm("23:30"), QuietHours(True, "22:00", "07:00"))

    def test_overnight_early_morning(self):
        assert in_window(parse_hhmm("03:00"), QuietHours(True, "22:00", "07:00"))

    def test_overnight_daytime_outside(self):
        assert not in_window(parse_hhmm("12:00"), QuietHours(True, "22:00", "07:00"))

    def test_overnight_bounds_inclusive(self):
        window = QuietHours(True, "22:00", "07:00")
        assert in_window(parse_hhmm("22:00"), window)
        assert in_window(parse_hhmm("07:00"), window)
        assert not in_window(parse_hhmm("07:01"), window)
        assert not in_window(parse_hhmm("21:59"), window)


# ═══════════════════════════════════════════════════════════════════════════
# is_quiet_hours
# ═══════════════════════════════════════════════════════════════════════════

class TestIsQuietHours:

    def test_disabled_never_quiet(self):
        sub = _make_subscription(start="00:00", end="23:59", enabled=False)
        assert not is_quiet_hours(sub, _utc(12))

    def test_overnight_window_at_2330(self):
        assert is_quiet_hours(_make_subscription(), _utc(23, 30))

    def test_overnight_window_at_1200(self):
        assert not is_quiet_hours(_make_subscription(), _utc(12))

    def test_same_day_window(self):
        sub = _make_subscription(start="09:00", end="17:00")
        assert is_quiet_hours(sub, _utc(12))
        assert not is_quiet_hours(sub, _utc(20))

    def test_converts_to_subscriber_timezone(self):
        # 21:00 UTC is 23:00 in Kigali (UTC+2)
        kigali = _make_subscription(tz="Africa/Kigali")
        utc = _make_subscription(tz="UTC")
        assert is_quiet_hours(kigali, _utc(21))
        assert not is_quiet_hours(utc, _utc(21))

    def test_negative_offset_timezone(self):
        # 03:00 UTC is 23:00 the previous day in New York (EDT)
        sub = _make_subscription(tz="America/New_York")
        assert is_quiet_hours(sub, _utc(3))

    def test_naive_datetime_treated_as_utc(self):
        sub = _make_subscription(tz="UTC")
        assert is_quiet_hours(sub, datetime(2024, 6, 1, 23, 0))

    def test_pure_for_fixed_clock(self):
        sub = _make_subscription()
        now = _utc(23)
        assert is_quiet_hours(sub, now) == is_quiet_hours(sub, now)
