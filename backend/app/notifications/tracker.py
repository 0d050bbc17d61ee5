"""
tracker.py — Delivery Tracker (append-only ledger + statistics).

Every channel attempt becomes one ``DeliveryRecord`` appended to the
ledger. Nothing is keyed by target at storage level, so repeated sends to
the same device keep their full history; "latest outcome per target" is a
query over the log, not the storage model.

    Query                Cost
    ─────────────────    ──────────────────────────
    record_delivery      O(1) amortised (append)
    records(filters)     O(records)
    latest_by_target     O(records)
    stats_snapshot       O(subscribers + records)
    purge_older_than     O(records), copy-on-write
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from backend.app.notifications.models import (
    DeliveryRecord,
    DeviceClass,
    NotificationChannel,
    StatsSnapshot,
)
from backend.app.notifications.registry import SubscriptionStore

logger = logging.getLogger(__name__)


class DeliveryStore(ABC):
    """Storage contract for the delivery ledger."""

    @abstractmethod
    def record_delivery(self, record: DeliveryRecord) -> None: ...

    @abstractmethod
    def records(
        self,
        target: Optional[str] = None,
        channel: Optional[NotificationChannel] = None,
        since: Optional[datetime] = None,
    ) -> List[DeliveryRecord]: ...

    @abstractmethod
    def purge_older_than(self, cutoff: datetime) -> int: ...

    def latest_by_target(self) -> Dict[str, DeliveryRecord]:
        """Most recent record per target address."""
        latest: Dict[str, DeliveryRecord] = {}
        for record in self.records():
            current = latest.get(record.target)
            if current is None or record.delivered_at >= current.delivered_at:
                latest[record.target] = record
        return latest


class InMemoryDeliveryTracker(DeliveryStore):
    """Process-local ledger guarded by a lock held only for list operations."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: List[DeliveryRecord] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def record_delivery(self, record: DeliveryRecord) -> None:
        if record.success and record.error is not None:
            record.error = None
        elif not record.success and not record.error:
            record.error = "Unknown delivery failure"

        with self._lock:
            self._records.append(record)

    def records(
        self,
        target: Optional[str] = None,
        channel: Optional[NotificationChannel] = None,
        since: Optional[datetime] = None,
    ) -> List[DeliveryRecord]:
        with self._lock:
            snapshot = list(self._records)
        return [
            r for r in snapshot
            if (target is None or r.target == target)
            and (channel is None or r.channel == channel)
            and (since is None or r.delivered_at >= since)
        ]

    def purge_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.delivered_at >= cutoff]
            purged = before - len(self._records)
        if purged:
            logger.info("Purged %d delivery records older than %s", purged, cutoff.isoformat())
        return purged


def build_stats_snapshot(
    registry: SubscriptionStore,
    tracker: DeliveryStore,
) -> StatsSnapshot:
    """
    Aggregate registry + ledger statistics.

    Channel enablement and device class counts include inactive
    subscriptions that have not been swept yet.
    """
    stats = StatsSnapshot()

    for subscription in registry.snapshot():
        stats.total_subscriptions += 1
        if subscription.is_active:
            stats.active_subscriptions += 1

        for channel in NotificationChannel:
            if subscription.preferences.enabled_for(channel):
                stats.by_channel_enablement[channel.value] += 1

        device = subscription.contact.device_class
        if isinstance(device, DeviceClass):
            stats.by_device_class[device.value] += 1

    for record in tracker.records():
        if record.success:
            stats.delivery_success_count += 1
        else:
            stats.delivery_failure_count += 1

    return stats
