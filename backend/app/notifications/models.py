"""
models.py — Shared data structures for the citizen notification engine.

Defines:
    • DeviceClass          — push platform variant (ios / android / web)
    • NotificationChannel  — push / email / sms
    • PushPriority         — normal / high
    • QuietHours, NotificationPreferences, ContactInfo
    • Subscription         — a citizen following one incident
    • NotificationUpdate   — ephemeral incident change event
    • IncidentSummary      — optional incident context for templates
    • ResolutionDetails    — input of the resolution flow
    • PushNotification / PushAction — generic push content
    • PushRequest / EmailRequest / SmsRequest — channel requests
    • SendResult           — what an outbound send client returns
    • DeliveryRecord       — ledger entry for one channel attempt
    • DispatchSummary / BroadcastResult / StatsSnapshot — reports

═══════════════════════════════════════════════════════════════════════════
PREFERENCE DEFAULTS
═══════════════════════════════════════════════════════════════════════════

    Field           Default
    ──────────      ─────────────────────────────
    push            True
    email           True
    sms             False
    critical_only   False
    quiet_hours     disabled, 22:00 → 07:00
    timezone        Africa/Kigali

A subscription's incident_id never changes after creation; is_active goes
False on unsubscribe and the record stays until the retention sweep.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class DeviceClass(str, Enum):
    """Push-notification platform variant."""
    IOS     = "ios"
    ANDROID = "android"
    WEB     = "web"


class NotificationChannel(str, Enum):
    """Independent delivery mechanisms."""
    PUSH  = "push"
    EMAIL = "email"
    SMS   = "sms"


class PushPriority(str, Enum):
    NORMAL = "normal"
    HIGH   = "high"


URGENT_PRIORITY = "critical"
URGENT_STATUS = "escalated"


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def _generate_subscription_id() -> str:
    return f"sub_{uuid.uuid4().hex[:16]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════════════════
# Subscription
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class QuietHours:
    """Do-not-disturb window in the subscriber's local time ("HH:MM")."""
    enabled: bool = False
    start: str = "22:00"
    end: str = "07:00"


@dataclass
class NotificationPreferences:
    push: bool = True
    email: bool = True
    sms: bool = False
    critical_only: bool = False
    quiet_hours: QuietHours = field(default_factory=QuietHours)

    def enabled_for(self, channel: NotificationChannel) -> bool:
        return {
            NotificationChannel.PUSH: self.push,
            NotificationChannel.EMAIL: self.email,
            NotificationChannel.SMS: self.sms,
        }[channel]


@dataclass
class ContactInfo:
    """
    Channel addresses of a subscriber.

    Attributes
    ----------
    push_token : str | None
        FCM registration token.
    device_class : DeviceClass | str | None
        Push platform; unknown values are treated like ``web`` when
        building requests.
    email : str | None
    phone : str | None
        E.164 phone number.
    """
    push_token: Optional[str] = None
    device_class: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_actionable(self) -> bool:
        return bool(self.push_token or self.email or self.phone)

    def address_for(self, channel: NotificationChannel) -> Optional[str]:
        return {
            NotificationChannel.PUSH: self.push_token,
            NotificationChannel.EMAIL: self.email,
            NotificationChannel.SMS: self.phone,
        }[channel]


@dataclass
class Subscription:
    """A citizen's registration to follow one incident."""
    incident_id: str
    contact: ContactInfo
    preferences: NotificationPreferences = field(default_factory=NotificationPreferences)
    timezone: str = "Africa/Kigali"
    id: str = field(default_factory=_generate_subscription_id)
    is_active: bool = True
    created_at: datetime = field(default_factory=_now)

    def wants(self, channel: NotificationChannel) -> bool:
        """Channel enabled in preferences AND an address exists for it."""
        return (
            self.preferences.enabled_for(channel)
            and bool(self.contact.address_for(channel))
        )

    def to_dict(self) -> Dict[str, Any]:
        device = self.contact.device_class
        return {
            "id": self.id,
            "incident_id": self.incident_id,
            "contact": {
                "push_token": self.contact.push_token,
                "device_class": device.value if isinstance(device, DeviceClass) else device,
                "email": self.contact.email,
                "phone": self.contact.phone,
            },
            "preferences": asdict(self.preferences),
            "timezone": self.timezone,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
        }


# ═══════════════════════════════════════════════════════════════════════════
# Events
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class NotificationUpdate:
    """An incident change to fan out. Not persisted."""
    status: str
    message: str
    updated_by: str
    priority: Optional[str] = None
    location: Optional[str] = None
    estimated_time: Optional[str] = None
    action_required: Optional[bool] = None

    @property
    def is_urgent(self) -> bool:
        return self.priority == URGENT_PRIORITY or self.status == URGENT_STATUS


@dataclass
class IncidentSummary:
    """Incident context supplied by the caller's own store lookup."""
    id: str
    title: str = ""
    priority: str = "medium"
    location: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ResolutionDetails:
    resolved_by: str
    resolution_summary: str
    final_status: str = "resolved"
    time_to_resolution_minutes: int = 0
    actions_taken: List[str] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════
# Channel content & requests
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class PushAction:
    action: str
    title: str
    icon: Optional[str] = None


@dataclass
class PushNotification:
    """Generic push content, shaped per device class by the push adapter."""
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)
    image_url: Optional[str] = None
    actions: List[PushAction] = field(default_factory=list)
    priority: PushPriority = PushPriority.NORMAL
    sound: Optional[str] = None
    badge: Optional[int] = None


@dataclass
class PushRequest:
    token: str
    device_class: DeviceClass
    payload: Dict[str, Any]


@dataclass
class EmailRequest:
    to: str
    subject: str
    body: str


@dataclass
class SmsRequest:
    to: str
    message: str


@dataclass
class SendResult:
    """Outcome reported by an outbound send client."""
    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════
# Ledger & reports
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class DeliveryRecord:
    """Outcome of one attempted channel send. ``error`` is set iff failed."""
    target: str
    channel: NotificationChannel
    success: bool
    error: Optional[str] = None
    provider_message_id: Optional[str] = None
    delivered_at: datetime = field(default_factory=_now)
    subscription_id: Optional[str] = None
    incident_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "channel": self.channel.value,
            "success": self.success,
            "error": self.error,
            "provider_message_id": self.provider_message_id,
            "delivered_at": self.delivered_at.isoformat(),
            "subscription_id": self.subscription_id,
            "incident_id": self.incident_id,
        }


@dataclass
class DispatchSummary:
    """Informational result of one dispatch round."""
    incident_id: str
    active_subscribers: int = 0
    notified: int = 0
    skipped_critical_only: int = 0
    skipped_quiet_hours: int = 0
    attempts: int = 0
    failures: int = 0
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incident_id": self.incident_id,
            "active_subscribers": self.active_subscribers,
            "notified": self.notified,
            "skipped_critical_only": self.skipped_critical_only,
            "skipped_quiet_hours": self.skipped_quiet_hours,
            "attempts": self.attempts,
            "failures": self.failures,
            "started_at": self.started_at.isoformat(),
            "completed_at": _iso(self.completed_at),
        }


@dataclass
class ResolutionSummary:
    incident_id: str
    emails_attempted: int = 0
    emails_failed: int = 0
    final_update: Optional[DispatchSummary] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "incident_id": self.incident_id,
            "emails_attempted": self.emails_attempted,
            "emails_failed": self.emails_failed,
            "final_update": self.final_update.to_dict() if self.final_update else None,
        }


@dataclass
class BroadcastResult:
    """``sent`` counts attempts, not successes."""
    sent: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"sent": self.sent, "failed": self.failed}


@dataclass
class StatsSnapshot:
    total_subscriptions: int = 0
    active_subscriptions: int = 0
    by_channel_enablement: Dict[str, int] = field(
        default_factory=lambda: {c.value: 0 for c in NotificationChannel}
    )
    by_device_class: Dict[str, int] = field(
        default_factory=lambda: {d.value: 0 for d in DeviceClass}
    )
    delivery_success_count: int = 0
    delivery_failure_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SweepReport:
    subscriptions_removed: int = 0
    records_purged: int = 0
    swept_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscriptions_removed": self.subscriptions_removed,
            "records_purged": self.records_purged,
            "swept_at": self.swept_at.isoformat(),
        }
