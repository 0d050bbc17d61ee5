"""
broadcaster.py — Bulk Broadcaster: region-wide emergency push.

Pushes one emergency alert to every active subscriber across all
incidents, optionally narrowed to a set of device classes. Quiet hours
and critical-only preferences are deliberately not consulted: an
emergency broadcast always goes out.

    Subscriber                                   Counted as
    ──────────────────────────────────────────   ─────────────
    push disabled / no token                     — (not attempted)
    device class not in filter (or unknown)      — (not attempted)
    push attempted (any outcome)                 sent
    fan-out task escaped delivery isolation      failed

Per-send rejections, transport errors and timeouts are recorded in the
delivery ledger by the dispatcher and still count as sent.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, List, Optional

from backend.app.notifications.dispatcher import NotificationDispatcher
from backend.app.notifications.models import (
    BroadcastResult,
    DeviceClass,
    NotificationChannel,
    PushPriority,
    Subscription,
)
from backend.app.notifications.registry import SubscriptionStore
from backend.app.notifications import templates

logger = logging.getLogger(__name__)


def _push_priority(priority: str) -> PushPriority:
    if str(priority).lower() in ("high", "critical", "urgent"):
        return PushPriority.HIGH
    return PushPriority.NORMAL


def _normalise_filter(device_classes: Optional[Iterable[str]]) -> Optional[set]:
    if device_classes is None:
        return None
    wanted = set()
    for value in device_classes:
        try:
            wanted.add(DeviceClass(str(value).lower()))
        except ValueError:
            logger.warning("Ignoring unknown device class in broadcast filter: %s", value)
    return wanted


class BulkBroadcaster:
    """
    Usage:
        broadcaster = BulkBroadcaster(registry, dispatcher)
        result = await broadcaster.broadcast_emergency_alert(
            "Flash flood warning", "Move to higher ground", device_classes=["android"],
        )
        result.sent, result.failed
    """

    def __init__(self, registry: SubscriptionStore, dispatcher: NotificationDispatcher):
        self._registry = registry
        self._dispatcher = dispatcher

    def _recipients(self, wanted: Optional[set]) -> List[Subscription]:
        recipients = []
        for subscription in self._registry.all_active_subscribers():
            if not subscription.wants(NotificationChannel.PUSH):
                continue
            if wanted is not None and subscription.contact.device_class not in wanted:
                continue
            recipients.append(subscription)
        return recipients

    async def broadcast_emergency_alert(
        self,
        title: str,
        message: str,
        priority: str = "high",
        device_classes: Optional[Iterable[str]] = None,
    ) -> BroadcastResult:
        wanted = _normalise_filter(device_classes)
        recipients = self._recipients(wanted)
        result = BroadcastResult()

        if not recipients:
            logger.info("Emergency broadcast '%s': no eligible recipients", title)
            return result

        notification = templates.emergency_push(
            title, message, _push_priority(priority), self._dispatcher.clock(),
        )
        outcomes = await asyncio.gather(
            *(self._dispatcher.deliver_push(s, notification, s.incident_id) for s in recipients),
            return_exceptions=True,
        )

        for subscription, outcome in zip(recipients, outcomes):
            if isinstance(outcome, BaseException):
                result.failed += 1
                logger.error(
                    "Emergency broadcast to subscription %s aborted: %s", subscription.id, outcome,
                    extra={"subscription_id": subscription.id, "channel": "push"},
                )
            else:
                result.sent += 1

        logger.info(
            "Emergency broadcast '%s' [%s]: %d sent, %d failed",
            title, priority, result.sent, result.failed,
            extra={"recipient_count": len(recipients), "channel": "push"},
        )
        return result
