"""
service.py — NotificationService facade.

Wires the registry, delivery ledger, dispatcher, broadcaster and sweeper
around a set of send clients. The HTTP layer goes through
``get_notification_service()``; tests build their own instance with fake
clients:

    service = NotificationService(push_client=FakePush(), email_client=...)
    sub = await service.subscribe("42", ContactInfo(email="a@b.rw"))
    await service.send_progress_update("42", NotificationUpdate(...))
    service.get_stats()
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from backend.app.notifications import templates
from backend.app.notifications.broadcaster import BulkBroadcaster
from backend.app.notifications.dispatcher import NotificationDispatcher, utc_now
from backend.app.notifications.models import (
    BroadcastResult,
    ContactInfo,
    DeliveryRecord,
    DispatchSummary,
    IncidentSummary,
    NotificationChannel,
    NotificationUpdate,
    ResolutionDetails,
    ResolutionSummary,
    StatsSnapshot,
    Subscription,
    SweepReport,
)
from backend.app.notifications.registry import (
    InMemorySubscriptionRegistry,
    PreferenceInput,
    SubscriptionStore,
)
from backend.app.notifications.senders import (
    FcmPushClient,
    ResendEmailClient,
    TwilioSmsClient,
)
from backend.app.notifications.sweeper import RetentionSweeper
from backend.app.notifications.tracker import (
    DeliveryStore,
    InMemoryDeliveryTracker,
    build_stats_snapshot,
)

logger = logging.getLogger(__name__)


class NotificationService:

    def __init__(
        self,
        registry: Optional[SubscriptionStore] = None,
        tracker: Optional[DeliveryStore] = None,
        push_client=None,
        email_client=None,
        sms_client=None,
        *,
        max_concurrency: Optional[int] = None,
        send_timeout_seconds: Optional[float] = None,
        retention_days: Optional[int] = None,
        clock=None,
    ):
        self.registry = registry if registry is not None else InMemorySubscriptionRegistry()
        self.tracker = tracker if tracker is not None else InMemoryDeliveryTracker()
        self.push_client = push_client or FcmPushClient()
        self.email_client = email_client or ResendEmailClient()
        self.sms_client = sms_client or TwilioSmsClient()
        self._clock = clock or utc_now

        self.dispatcher = NotificationDispatcher(
            self.registry,
            self.tracker,
            self.push_client,
            self.email_client,
            self.sms_client,
            max_concurrency=max_concurrency,
            send_timeout_seconds=send_timeout_seconds,
            clock=self._clock,
        )
        self.broadcaster = BulkBroadcaster(self.registry, self.dispatcher)
        self.sweeper = RetentionSweeper(
            self.registry, self.tracker, retention_days=retention_days, clock=self._clock,
        )

    # ── Subscription registry ──

    async def subscribe(
        self,
        incident_id: str,
        contact: ContactInfo,
        preferences: PreferenceInput = None,
        timezone: Optional[str] = None,
    ) -> Subscription:
        """
        Register a subscriber, then send a confirmation push when possible.

        The confirmation outcome is recorded in the ledger; it never fails
        the subscription itself.
        """
        subscription = self.registry.subscribe(incident_id, contact, preferences, timezone)

        if subscription.wants(NotificationChannel.PUSH):
            outcome = await self.dispatcher.deliver_push(
                subscription,
                templates.confirmation_push(subscription.incident_id, self._clock()),
                subscription.incident_id,
            )
            if not outcome.record.success:
                logger.warning(
                    "Confirmation push for %s failed: %s",
                    subscription.id, outcome.record.error,
                    extra={"subscription_id": subscription.id},
                )
        return subscription

    def unsubscribe(self, subscription_id: str) -> bool:
        return self.registry.unsubscribe(subscription_id)

    def update_preferences(self, subscription_id: str, partial: Mapping[str, Any]) -> bool:
        return self.registry.update_preferences(subscription_id, partial)

    def get_subscription(self, subscription_id: str) -> Optional[Subscription]:
        return self.registry.get(subscription_id)

    # ── Dispatch ──

    async def send_progress_update(
        self,
        incident_id: str,
        update: NotificationUpdate,
        incident: Optional[IncidentSummary] = None,
    ) -> DispatchSummary:
        return await self.dispatcher.send_progress_update(incident_id, update, incident)

    async def send_resolution(
        self,
        incident_id: str,
        details: ResolutionDetails,
        incident: Optional[IncidentSummary] = None,
    ) -> ResolutionSummary:
        return await self.dispatcher.send_resolution(incident_id, details, incident)

    async def broadcast_emergency_alert(
        self,
        title: str,
        message: str,
        priority: str = "high",
        device_classes: Optional[Iterable[str]] = None,
    ) -> BroadcastResult:
        return await self.broadcaster.broadcast_emergency_alert(
            title, message, priority, device_classes,
        )

    # ── Ledger / housekeeping ──

    def get_stats(self) -> StatsSnapshot:
        return build_stats_snapshot(self.registry, self.tracker)

    def delivery_records(
        self,
        target: Optional[str] = None,
        channel: Optional[NotificationChannel] = None,
        since: Optional[datetime] = None,
    ) -> List[DeliveryRecord]:
        return self.tracker.records(target=target, channel=channel, since=since)

    def latest_by_target(self) -> Dict[str, DeliveryRecord]:
        return self.tracker.latest_by_target()

    def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        return self.sweeper.sweep(now)

    async def close(self) -> None:
        """Release HTTP clients held by the send clients."""
        for client in (self.push_client, self.email_client, self.sms_client):
            close = getattr(client, "close", None)
            if close is not None:
                await close()


# ═══════════════════════════════════════════════════════════════════════════
# Global Instance
# ═══════════════════════════════════════════════════════════════════════════

_service_instance: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    """Get or create the process-wide notification service."""
    global _service_instance
    if _service_instance is None:
        _service_instance = NotificationService()
    return _service_instance


async def shutdown_notification_service() -> None:
    """Close the global service's HTTP clients, if it was ever created."""
    global _service_instance
    if _service_instance is not None:
        await _service_instance.close()
        _service_instance = None
