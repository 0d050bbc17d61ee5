"""
dispatcher.py — Notification Dispatcher: per-incident fan-out engine.

Given an incident update, decides who among the incident's subscribers
is notified, through which channels, and records every attempt.

═══════════════════════════════════════════════════════════════════════════
PER-SUBSCRIBER STATE MACHINE (one update)
═══════════════════════════════════════════════════════════════════════════

    active subscriber
          │
          ▼
    ┌──────────────────┐  critical_only AND not urgent
    │ 1. Critical gate │ ─────────────────────────────────▶ skip (no record)
    └────────┬─────────┘
             ▼
    ┌──────────────────┐  inside local quiet-hours window
    │ 2. Quiet hours   │ ─────────────────────────────────▶ skip (no record)
    └────────┬─────────┘
             ▼
    ┌──────────────────┐  push  : enabled AND token
    │ 3. Channel fan-  │  email : enabled AND address     each → 1 record
    │    out           │  sms   : enabled AND phone
    └──────────────────┘

    urgent ⇔ priority == "critical" OR status == "escalated"
    urgent  → push priority=high,   sound="emergency"
    normal  → push priority=normal, sound="default"

═══════════════════════════════════════════════════════════════════════════
CONCURRENCY
═══════════════════════════════════════════════════════════════════════════

All channel sends of a round are gathered concurrently, bounded by a
semaphore (DISPATCH_MAX_CONCURRENCY, one per event loop, shared by every
round and broadcast running on that loop). Each send carries its own
deadline (CHANNEL_SEND_TIMEOUT_SECONDS); a timeout, a ChannelSendError or
a provider rejection all become ``success=False`` records and never abort
the round.

Resolution flow: long-form report emails are all attempted (gathered)
before the final ``status="resolved"`` progress update is dispatched.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import weakref
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from typing import Awaitable, Callable, List, Optional

from backend.app.core.config import settings
from backend.app.core.errors import ChannelSendError
from backend.app.notifications import templates
from backend.app.notifications.channels import email as email_adapter
from backend.app.notifications.channels import push as push_adapter
from backend.app.notifications.channels import sms as sms_adapter
from backend.app.notifications.models import (
    DeliveryRecord,
    DispatchSummary,
    IncidentSummary,
    NotificationChannel,
    NotificationUpdate,
    PushNotification,
    ResolutionDetails,
    ResolutionSummary,
    SendResult,
    Subscription,
)
from backend.app.notifications.quiet_hours import is_quiet_hours
from backend.app.notifications.registry import SubscriptionStore
from backend.app.notifications.tracker import DeliveryStore

logger = logging.getLogger(__name__)

RESOLVED_STATUS = "resolved"
RESOLVED_MESSAGE = "Incident has been resolved. Check your email for detailed report."

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DeliveryOutcome:
    """A recorded attempt for one target on one channel."""
    record: DeliveryRecord


class NotificationDispatcher:
    """
    Orchestrates progress-update and resolution dispatch.

    Usage:
        dispatcher = NotificationDispatcher(registry, tracker, push, email, sms)
        summary = await dispatcher.send_progress_update(
            "42",
            NotificationUpdate(status="in_progress", message="Crew on site",
                               updated_by="Station 3"),
        )
    """

    def __init__(
        self,
        registry: SubscriptionStore,
        tracker: DeliveryStore,
        push_client,
        email_client,
        sms_client,
        *,
        max_concurrency: Optional[int] = None,
        send_timeout_seconds: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        self._registry = registry
        self._tracker = tracker
        self._push = push_client
        self._email = email_client
        self._sms = sms_client
        self._max_concurrency = max_concurrency or settings.DISPATCH_MAX_CONCURRENCY
        self._timeout = send_timeout_seconds or settings.CHANNEL_SEND_TIMEOUT_SECONDS
        self._clock = clock or utc_now
        self._limiters: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Semaphore]" = (
            weakref.WeakKeyDictionary()
        )
        self._limiters_lock = threading.Lock()

    @property
    def clock(self) -> Clock:
        return self._clock

    def _limiter(self) -> asyncio.Semaphore:
        loop = asyncio.get_running_loop()
        with self._limiters_lock:
            limiter = self._limiters.get(loop)
            if limiter is None:
                limiter = asyncio.Semaphore(self._max_concurrency)
                self._limiters[loop] = limiter
        return limiter

    # ═══════════════════════════════════════════════════════════════════
    # Single attempt
    # ═══════════════════════════════════════════════════════════════════

    async def _deliver(
        self,
        channel: NotificationChannel,
        target: str,
        send: Callable[[], Awaitable[SendResult]],
        subscription: Optional[Subscription] = None,
        incident_id: Optional[str] = None,
    ) -> DeliveryOutcome:
        """Run one bounded, time-limited send and record its outcome."""
        result: Optional[SendResult] = None
        error: Optional[str] = None

        async with self._limiter():
            try:
                result = await asyncio.wait_for(send(), timeout=self._timeout)
            except asyncio.TimeoutError:
                error = f"Timed out after {self._timeout:.1f}s"
            except ChannelSendError as exc:
                error = exc.reason or exc.message
            except Exception as exc:
                logger.exception("Unexpected %s send error for %s", channel.value, target)
                error = str(exc) or type(exc).__name__

        if result is not None:
            success = result.success
            error = None if success else (result.error or "Provider reported failure")
            message_id = result.provider_message_id
        else:
            success, message_id = False, None

        record = DeliveryRecord(
            target=target,
            channel=channel,
            success=success,
            error=error,
            provider_message_id=message_id,
            delivered_at=self._clock(),
            subscription_id=subscription.id if subscription else None,
            incident_id=incident_id,
        )
        self._tracker.record_delivery(record)

        if not success:
            logger.warning(
                "%s delivery to %s failed: %s", channel.value, target, error,
                extra={"channel": channel.value, "target": target, "incident_id": incident_id},
            )
        return DeliveryOutcome(record=record)

    def deliver_push(
        self,
        subscription: Subscription,
        notification: PushNotification,
        incident_id: Optional[str] = None,
    ) -> Awaitable[DeliveryOutcome]:
        """Shape ``notification`` for the subscriber's device and send it."""
        request = push_adapter.build_request(
            subscription.contact.push_token,
            subscription.contact.device_class,
            notification,
        )
        return self._deliver(
            NotificationChannel.PUSH,
            request.token,
            partial(self._push.send, request),
            subscription,
            incident_id,
        )

    def deliver_email(
        self,
        subscription: Subscription,
        subject: str,
        html_body: str,
        incident_id: Optional[str] = None,
    ) -> Awaitable[DeliveryOutcome]:
        request = email_adapter.build_request(subscription.contact.email, subject, html_body)
        return self._deliver(
            NotificationChannel.EMAIL,
            request.to,
            partial(self._email.send, request),
            subscription,
            incident_id,
        )

    def deliver_sms(
        self,
        subscription: Subscription,
        message: str,
        incident_id: Optional[str] = None,
    ) -> Awaitable[DeliveryOutcome]:
        request = sms_adapter.build_request(subscription.contact.phone, message)
        return self._deliver(
            NotificationChannel.SMS,
            request.to,
            partial(self._sms.send, request),
            subscription,
            incident_id,
        )

    # ═══════════════════════════════════════════════════════════════════
    # Progress update
    # ═══════════════════════════════════════════════════════════════════

    def _plan_channels(
        self,
        subscription: Subscription,
        incident_id: str,
        update: NotificationUpdate,
        push_content: PushNotification,
        sms_text: str,
        now: datetime,
        incident: Optional[IncidentSummary],
    ) -> List[Awaitable[DeliveryOutcome]]:
        planned: List[Awaitable[DeliveryOutcome]] = []

        if subscription.wants(NotificationChannel.PUSH):
            planned.append(self.deliver_push(subscription, push_content, incident_id))

        if subscription.wants(NotificationChannel.EMAIL):
            planned.append(self.deliver_email(
                subscription,
                templates.update_email_subject(incident_id, update),
                templates.update_email_html(incident_id, update, subscription, now, incident),
                incident_id,
            ))

        if subscription.wants(NotificationChannel.SMS):
            planned.append(self.deliver_sms(subscription, sms_text, incident_id))

        return planned

    async def send_progress_update(
        self,
        incident_id: str,
        update: NotificationUpdate,
        incident: Optional[IncidentSummary] = None,
    ) -> DispatchSummary:
        """
        Run one dispatch round for an incident update.

        The incident is assumed to exist (the caller resolved it).
        Delivery failures are recorded, never raised.

        Returns
        -------
        DispatchSummary
        """
        incident_id = str(incident_id)
        now = self._clock()
        subscribers = self._registry.active_subscribers_for(incident_id)
        summary = DispatchSummary(
            incident_id=incident_id,
            active_subscribers=len(subscribers),
            started_at=now,
        )

        if not subscribers:
            logger.info("No active subscribers for incident #%s", incident_id)
            summary.completed_at = self._clock()
            return summary

        urgent = update.is_urgent
        push_content = templates.update_push(incident_id, update, now)
        sms_text = templates.update_sms(incident_id, update, now)

        planned: List[Awaitable[DeliveryOutcome]] = []
        for subscription in subscribers:
            if subscription.preferences.critical_only and not urgent:
                summary.skipped_critical_only += 1
                continue

            if is_quiet_hours(subscription, now):
                logger.debug(
                    "Skipping subscriber %s for incident #%s: quiet hours",
                    subscription.id, incident_id,
                )
                summary.skipped_quiet_hours += 1
                continue

            sends = self._plan_channels(
                subscription, incident_id, update, push_content, sms_text, now, incident,
            )
            if sends:
                summary.notified += 1
                planned.extend(sends)

        outcomes = await asyncio.gather(*planned)

        summary.attempts = len(outcomes)
        summary.failures = sum(1 for o in outcomes if not o.record.success)
        summary.completed_at = self._clock()

        logger.info(
            "Progress update for incident #%s [%s]: %d/%d subscribers notified, "
            "%d attempts, %d failed (skipped: %d critical-only, %d quiet hours)",
            incident_id, update.status, summary.notified, summary.active_subscribers,
            summary.attempts, summary.failures,
            summary.skipped_critical_only, summary.skipped_quiet_hours,
            extra={"incident_id": incident_id, "recipient_count": summary.notified},
        )
        return summary

    # ═══════════════════════════════════════════════════════════════════
    # Resolution
    # ═══════════════════════════════════════════════════════════════════

    async def send_resolution(
        self,
        incident_id: str,
        details: ResolutionDetails,
        incident: Optional[IncidentSummary] = None,
    ) -> ResolutionSummary:
        """
        Email the long-form resolution report to every active, email-enabled
        subscriber, then dispatch a regular ``resolved`` progress update.

        The report emails ignore critical-only and quiet-hours filtering;
        the final progress update goes through the regular filters.
        """
        incident_id = str(incident_id)
        summary = ResolutionSummary(incident_id=incident_id)

        recipients = [
            s for s in self._registry.active_subscribers_for(incident_id)
            if s.wants(NotificationChannel.EMAIL)
        ]

        if recipients:
            subject = templates.resolution_email_subject(incident_id, incident)
            outcomes = await asyncio.gather(*(
                self.deliver_email(
                    s,
                    subject,
                    templates.resolution_email_html(incident_id, details, s, incident),
                    incident_id,
                )
                for s in recipients
            ))
            summary.emails_attempted = len(outcomes)
            summary.emails_failed = sum(1 for o in outcomes if not o.record.success)
            logger.info(
                "Resolution report for incident #%s: %d emails, %d failed",
                incident_id, summary.emails_attempted, summary.emails_failed,
            )
        else:
            logger.info("No email subscribers for incident #%s", incident_id)

        summary.final_update = await self.send_progress_update(
            incident_id,
            NotificationUpdate(
                status=RESOLVED_STATUS,
                message=RESOLVED_MESSAGE,
                updated_by=details.resolved_by,
            ),
            incident,
        )
        return summary
