"""
registry.py — Subscription Registry.

Owns the incident → subscribers mapping. The dispatcher, broadcaster and
sweeper only see the abstract ``SubscriptionStore`` so a persistent store
can replace the in-memory one without touching them.

Concurrency
-----------
All mutations and reads take a single ``threading.Lock`` for the duration
of a dictionary operation only (never across an await or a network call).
Per-incident lists are replaced, not mutated in place, so a list handed
out by ``active_subscribers_for`` is a stable snapshot.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import fields, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from backend.app.core.config import settings
from backend.app.core.errors import InvalidContactError, ValidationError
from backend.app.notifications.models import (
    ContactInfo,
    DeviceClass,
    NotificationPreferences,
    QuietHours,
    Subscription,
)
from backend.app.notifications.quiet_hours import parse_hhmm, resolve_zone

logger = logging.getLogger(__name__)

PreferenceInput = Union[NotificationPreferences, Mapping[str, Any], None]

_PREFERENCE_FIELDS = {f.name for f in fields(NotificationPreferences)}
_QUIET_HOURS_FIELDS = {f.name for f in fields(QuietHours)}


# ═══════════════════════════════════════════════════════════════════════════
# Input normalisation
# ═══════════════════════════════════════════════════════════════════════════

def _coerce_quiet_hours(value: Any, base: Optional[QuietHours] = None) -> QuietHours:
    if isinstance(value, QuietHours):
        window = value
    elif isinstance(value, Mapping):
        unknown = set(value) - _QUIET_HOURS_FIELDS
        if unknown:
            raise ValidationError(
                f"Unknown quiet_hours fields: {sorted(unknown)}", field="quiet_hours",
            )
        window = replace(base or QuietHours(), **value)
    else:
        raise ValidationError("quiet_hours must be an object", field="quiet_hours")

    for name in ("start", "end"):
        try:
            parse_hhmm(getattr(window, name))
        except ValueError as exc:
            raise ValidationError(str(exc), field=f"quiet_hours.{name}")
    return window


def merge_preferences(
    base: NotificationPreferences,
    partial: Mapping[str, Any],
) -> NotificationPreferences:
    """Return ``base`` with the supplied fields overridden."""
    unknown = set(partial) - _PREFERENCE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown preference fields: {sorted(unknown)}")

    changes = {k: v for k, v in partial.items() if v is not None}
    if "quiet_hours" in changes:
        changes["quiet_hours"] = _coerce_quiet_hours(
            changes["quiet_hours"], base.quiet_hours,
        )
    return replace(base, **changes)


def _normalise_device_class(value: Optional[str]) -> Optional[str]:
    if value is None or isinstance(value, DeviceClass):
        return value
    try:
        return DeviceClass(value.lower())
    except ValueError:
        # kept verbatim; the push adapter shapes unknown classes like web
        return value


# ═══════════════════════════════════════════════════════════════════════════
# Store interface
# ═══════════════════════════════════════════════════════════════════════════

class SubscriptionStore(ABC):
    """Storage contract used by the rest of the engine."""

    @abstractmethod
    def subscribe(
        self,
        incident_id: str,
        contact: ContactInfo,
        preferences: PreferenceInput = None,
        timezone: Optional[str] = None,
    ) -> Subscription: ...

    @abstractmethod
    def unsubscribe(self, subscription_id: str) -> bool: ...

    @abstractmethod
    def update_preferences(
        self, subscription_id: str, partial: Mapping[str, Any],
    ) -> bool: ...

    @abstractmethod
    def get(self, subscription_id: str) -> Optional[Subscription]: ...

    @abstractmethod
    def active_subscribers_for(self, incident_id: str) -> List[Subscription]: ...

    @abstractmethod
    def all_active_subscribers(self) -> List[Subscription]: ...

    @abstractmethod
    def snapshot(self) -> List[Subscription]:
        """Every stored subscription, active or not."""

    @abstractmethod
    def remove(self, subscription_ids: Iterable[str]) -> int: ...


# ═══════════════════════════════════════════════════════════════════════════
# In-memory implementation
# ═══════════════════════════════════════════════════════════════════════════

class InMemorySubscriptionRegistry(SubscriptionStore):
    """
    Process-local registry.

    Usage:
        registry = InMemorySubscriptionRegistry()
        sub = registry.subscribe("42", ContactInfo(email="a@b.rw"))
        registry.active_subscribers_for("42")   # [sub]
        registry.unsubscribe(sub.id)            # True
        registry.unsubscribe(sub.id)            # False
    """

    def __init__(self, default_timezone: Optional[str] = None):
        self._lock = threading.Lock()
        self._by_incident: Dict[str, List[Subscription]] = {}
        self._by_id: Dict[str, Subscription] = {}
        self._default_timezone = default_timezone or settings.DEFAULT_TIMEZONE

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    # ── Mutations ──

    def subscribe(
        self,
        incident_id: str,
        contact: ContactInfo,
        preferences: PreferenceInput = None,
        timezone: Optional[str] = None,
    ) -> Subscription:
        """
        Register a subscriber for an incident.

        Raises
        ------
        InvalidContactError
            If neither push token, email nor phone is supplied.
        ValidationError
            On unknown timezone, malformed quiet hours or unknown fields.
        """
        if contact is None or not contact.is_actionable:
            raise InvalidContactError()

        tz_name = timezone or self._default_timezone
        try:
            resolve_zone(tz_name)
        except ValueError as exc:
            raise ValidationError(str(exc), field="timezone")

        if isinstance(preferences, NotificationPreferences):
            prefs = merge_preferences(NotificationPreferences(), {
                "push": preferences.push,
                "email": preferences.email,
                "sms": preferences.sms,
                "critical_only": preferences.critical_only,
                "quiet_hours": preferences.quiet_hours,
            })
        else:
            prefs = merge_preferences(NotificationPreferences(), preferences or {})

        subscription = Subscription(
            incident_id=str(incident_id),
            contact=replace(
                contact, device_class=_normalise_device_class(contact.device_class),
            ),
            preferences=prefs,
            timezone=tz_name,
        )

        with self._lock:
            current = self._by_incident.get(subscription.incident_id, [])
            self._by_incident[subscription.incident_id] = current + [subscription]
            self._by_id[subscription.id] = subscription

        device = subscription.contact.device_class
        logger.info(
            "New subscription %s for incident #%s (device=%s)",
            subscription.id, subscription.incident_id, getattr(device, "value", device),
            extra={"subscription_id": subscription.id, "incident_id": subscription.incident_id},
        )
        return subscription

    def unsubscribe(self, subscription_id: str) -> bool:
        """Deactivate; False when unknown or already inactive."""
        with self._lock:
            subscription = self._by_id.get(subscription_id)
            if subscription is None or not subscription.is_active:
                found = False
            else:
                subscription.is_active = False
                found = True

        if found:
            logger.info("Unsubscribed %s", subscription_id)
        else:
            logger.warning("Unsubscribe: subscription %s not found or inactive", subscription_id)
        return found

    def update_preferences(self, subscription_id: str, partial: Mapping[str, Any]) -> bool:
        """Merge ``partial`` into the stored preferences; False when unknown."""
        with self._lock:
            subscription = self._by_id.get(subscription_id)
            if subscription is not None:
                subscription.preferences = merge_preferences(
                    subscription.preferences, partial,
                )

        if subscription is None:
            logger.warning("Update preferences: subscription %s not found", subscription_id)
            return False
        logger.info("Updated notification preferences for %s", subscription_id)
        return True

    def remove(self, subscription_ids: Iterable[str]) -> int:
        """Hard-delete the given ids (used by the retention sweep)."""
        doomed = set(subscription_ids)
        if not doomed:
            return 0

        removed = 0
        with self._lock:
            for incident_id, subscribers in list(self._by_incident.items()):
                kept = [s for s in subscribers if s.id not in doomed]
                if len(kept) == len(subscribers):
                    continue
                removed += len(subscribers) - len(kept)
                if kept:
                    self._by_incident[incident_id] = kept
                else:
                    del self._by_incident[incident_id]
            for sid in doomed:
                self._by_id.pop(sid, None)
        return removed

    # ── Queries ──

    def get(self, subscription_id: str) -> Optional[Subscription]:
        with self._lock:
            return self._by_id.get(subscription_id)

    def active_subscribers_for(self, incident_id: str) -> List[Subscription]:
        with self._lock:
            subscribers = self._by_incident.get(str(incident_id), [])
        return [s for s in subscribers if s.is_active]

    def all_active_subscribers(self) -> List[Subscription]:
        with self._lock:
            lists = list(self._by_incident.values())
        return [s for subscribers in lists for s in subscribers if s.is_active]

    def snapshot(self) -> List[Subscription]:
        with self._lock:
            return list(self._by_id.values())
