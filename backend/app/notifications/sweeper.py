"""
sweeper.py — Retention Sweeper.

Caller-invoked housekeeping pass:

    Subscription                       Outcome
    ───────────────────────────────    ────────
    active (any age)                   kept
    inactive, age ≤ retention window   kept
    inactive, age > retention window   removed

    DeliveryRecord older than window   purged

The sweep works from a snapshot taken up front and removes only the ids
selected from it, so a subscription created while the sweep runs is never
touched. Each removal holds the registry lock only for its own list
rebuild.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from backend.app.core.config import settings
from backend.app.notifications.models import SweepReport
from backend.app.notifications.registry import SubscriptionStore
from backend.app.notifications.tracker import DeliveryStore

logger = logging.getLogger(__name__)


class RetentionSweeper:

    def __init__(
        self,
        registry: SubscriptionStore,
        tracker: DeliveryStore,
        retention_days: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._registry = registry
        self._tracker = tracker
        self._retention = timedelta(days=retention_days or settings.RETENTION_DAYS)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        cutoff = now - self._retention

        expired = [
            s.id for s in self._registry.snapshot()
            if not s.is_active and s.created_at < cutoff
        ]

        report = SweepReport(
            subscriptions_removed=self._registry.remove(expired),
            records_purged=self._tracker.purge_older_than(cutoff),
            swept_at=now,
        )

        logger.info(
            "Retention sweep: %d subscriptions removed, %d delivery records purged (cutoff %s)",
            report.subscriptions_removed, report.records_purged, cutoff.isoformat(),
        )
        return report
