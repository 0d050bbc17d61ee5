"""
templates.py — Content generation for citizen notifications.

Pure functions: every value that varies (incident, update, subscriber,
clock) is an argument. The dispatcher decides *whether* to send; this
module only decides *what it says*.

═══════════════════════════════════════════════════════════════════════════
TEMPLATE INVENTORY
═══════════════════════════════════════════════════════════════════════════

    Function                  Channel   Used by
    ──────────────────────    ───────   ─────────────────────────────────
    update_push               push      progress-update dispatch
    update_email_subject/html email     progress-update dispatch
    update_sms                sms       progress-update dispatch
    resolution_email_*        email     resolution flow (long-form report)
    confirmation_push         push      subscribe confirmation
    emergency_push            push      bulk broadcast

Emergency numbers (Rwanda): Police 100 | Fire 101 | Medical 102
"""

from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Any, Optional, Tuple

from backend.app.core.config import settings
from backend.app.notifications.models import (
    IncidentSummary,
    NotificationUpdate,
    PushAction,
    PushNotification,
    PushPriority,
    ResolutionDetails,
    Subscription,
)
from backend.app.notifications.quiet_hours import resolve_zone

EMERGENCY_NUMBERS = "Police 100 | Fire 101 | Medical 102"
NOTIFICATION_IMAGE_URL = "https://rindwa.com/images/notification-icon.png"

_STATUS_EMOJIS = {
    "pending": "⏳",
    "assigned": "👤",
    "in_progress": "🚨",
    "resolved": "✅",
    "escalated": "🔴",
    "cancelled": "❌",
}

_PRIORITY_COLORS = {
    "low": "#10b981",
    "medium": "#f59e0b",
    "high": "#f97316",
    "critical": "#dc2626",
}


def status_emoji(status: str) -> str:
    return _STATUS_EMOJIS.get(status, "📢")


def priority_color(priority: Optional[str]) -> str:
    return _PRIORITY_COLORS.get(priority or "medium", "#6b7280")


def _e(value: Any) -> str:
    return escape(str(value)) if value is not None else ""


def _incident_title(incident_id: str, incident: Optional[IncidentSummary]) -> str:
    if incident and incident.title:
        return incident.title
    return f"Incident #{incident_id}"


# ═══════════════════════════════════════════════════════════════════════════
# Push
# ═══════════════════════════════════════════════════════════════════════════

def update_push(
    incident_id: str,
    update: NotificationUpdate,
    now: datetime,
) -> PushNotification:
    """Push content for a progress update; urgency drives priority + sound."""
    urgent = update.is_urgent
    return PushNotification(
        title=f"{status_emoji(update.status)} Incident Update #{incident_id}",
        body=f"Status: {update.status.upper()} - {update.message}",
        data={
            "type": "incident_update",
            "incidentId": incident_id,
            "status": update.status,
            "priority": update.priority,
            "updatedBy": update.updated_by,
            "timestamp": now.isoformat(),
            "actionRequired": update.action_required,
        },
        priority=PushPriority.HIGH if urgent else PushPriority.NORMAL,
        sound="emergency" if urgent else "default",
        actions=[
            PushAction("view_details", "View Details", "info"),
            PushAction("share_update", "Share", "share"),
        ],
    )


def confirmation_push(incident_id: str, now: datetime) -> PushNotification:
    return PushNotification(
        title="🔔 Subscription Confirmed",
        body=f"You'll receive updates about incident #{incident_id}",
        data={
            "type": "subscription_confirmed",
            "incidentId": incident_id,
            "timestamp": now.isoformat(),
        },
        image_url=NOTIFICATION_IMAGE_URL,
        actions=[
            PushAction("view_incident", "View Incident", "eye"),
            PushAction("manage_preferences", "Settings", "settings"),
        ],
    )


def emergency_push(
    title: str,
    message: str,
    priority: PushPriority,
    now: datetime,
) -> PushNotification:
    return PushNotification(
        title=f"🚨 {title}",
        body=message,
        data={
            "type": "emergency_alert",
            "timestamp": now.isoformat(),
            "priority": priority.value,
        },
        priority=priority,
        sound="emergency",
    )


# ═══════════════════════════════════════════════════════════════════════════
# SMS
# ═══════════════════════════════════════════════════════════════════════════

def update_sms(incident_id: str, update: NotificationUpdate, now: datetime) -> str:
    """Multi-line SMS text; local time is always rendered in Kigali time."""
    local = now.astimezone(resolve_zone(settings.DEFAULT_TIMEZONE))
    lines = [
        f"{status_emoji(update.status)} RINDWA ALERT #{incident_id}",
        f"Status: {update.status.upper()}",
        update.message,
    ]
    if update.estimated_time:
        lines.append(f"ETA: {update.estimated_time}")
    if update.location:
        lines.append(f"Location: {update.location}")
    lines.append(f"Updated by: {update.updated_by}")
    lines.append(f"Time: {local.strftime('%d/%m/%Y %H:%M')}")
    lines.append(f"Emergency: {EMERGENCY_NUMBERS}")
    return "\n".join(lines)


# ═══════════════════════════════════════════════════════════════════════════
# Email: progress update
# ═══════════════════════════════════════════════════════════════════════════

def update_email_subject(incident_id: str, update: NotificationUpdate) -> str:
    return f"{status_emoji(update.status)} Emergency Update: Incident #{incident_id}"


def update_email_html(
    incident_id: str,
    update: NotificationUpdate,
    subscription: Subscription,
    now: datetime,
    incident: Optional[IncidentSummary] = None,
) -> str:
    base_url = settings.PUBLIC_BASE_URL.rstrip("/")
    color = priority_color(update.priority)
    priority = update.priority or (incident.priority if incident else None) or "medium"
    location = update.location or (incident.location if incident else None) or "Not specified"

    eta_row = ""
    if update.estimated_time:
        eta_row = (
            '<tr><td style="padding:8px 0;font-weight:bold;">Estimated Completion:</td>'
            f'<td style="padding:8px 0;">{_e(update.estimated_time)}</td></tr>'
        )

    action_banner = ""
    if update.action_required:
        action_banner = (
            '<div style="background:#fef3c7;border:1px solid #f59e0b;padding:15px;'
            'border-radius:6px;margin-bottom:20px;">'
            '<p style="margin:0;color:#92400e;font-weight:bold;">⚠️ Action Required</p>'
            '<p style="margin:5px 0 0 0;color:#92400e;">'
            "Please check the incident details for required actions.</p></div>"
        )

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Incident Update - Rindwa Emergency</title></head>
<body style="font-family:Arial,sans-serif;line-height:1.6;color:#333;max-width:600px;margin:0 auto;padding:20px;">
  <div style="background:linear-gradient(135deg,#dc2626,#991b1b);color:white;padding:20px;border-radius:8px 8px 0 0;text-align:center;">
    <h1 style="margin:0;font-size:24px;">{status_emoji(update.status)} Incident Update</h1>
    <p style="margin:10px 0 0 0;font-size:16px;">Case #{_e(incident_id)}</p>
  </div>
  <div style="background:#f9fafb;padding:20px;border:1px solid #e5e7eb;border-top:none;">
    <div style="background:white;padding:20px;border-radius:8px;margin-bottom:20px;">
      <h2 style="color:#dc2626;margin-top:0;">{_e(_incident_title(incident_id, incident))}</h2>
      <span style="background:{color};color:white;padding:4px 12px;border-radius:20px;font-size:12px;text-transform:uppercase;font-weight:bold;">{_e(update.status)}</span>
      <div style="background:#f3f4f6;padding:15px;border-radius:6px;margin:20px 0;">
        <h3 style="margin:0 0 10px 0;color:#374151;">Latest Update</h3>
        <p style="margin:0;font-size:16px;">{_e(update.message)}</p>
      </div>
      <table style="width:100%;border-collapse:collapse;margin-bottom:20px;">
        <tr><td style="padding:8px 0;font-weight:bold;width:30%;">Priority:</td><td style="padding:8px 0;">{_e(priority)}</td></tr>
        <tr><td style="padding:8px 0;font-weight:bold;">Location:</td><td style="padding:8px 0;">{_e(location)}</td></tr>
        <tr><td style="padding:8px 0;font-weight:bold;">Updated by:</td><td style="padding:8px 0;">{_e(update.updated_by)}</td></tr>
        <tr><td style="padding:8px 0;font-weight:bold;">Time:</td><td style="padding:8px 0;">{now.strftime('%Y-%m-%d %H:%M UTC')}</td></tr>
        {eta_row}
      </table>
      {action_banner}
    </div>
    <div style="text-align:center;margin-top:20px;">
      <a href="{base_url}/incidents/{_e(incident_id)}" style="background:#dc2626;color:white;padding:12px 24px;text-decoration:none;border-radius:6px;font-weight:bold;display:inline-block;">View Full Details</a>
    </div>
  </div>
  <div style="background:#374151;color:#d1d5db;padding:20px;border-radius:0 0 8px 8px;text-align:center;font-size:14px;">
    <p style="margin:0 0 10px 0;">Emergency Services Rwanda</p>
    <p style="margin:0;font-size:12px;">{EMERGENCY_NUMBERS}</p>
    <p style="margin:10px 0 0 0;font-size:12px;"><a href="{base_url}/unsubscribe/{_e(subscription.id)}" style="color:#9ca3af;">Manage Notifications</a></p>
  </div>
</body>
</html>
"""


# ═══════════════════════════════════════════════════════════════════════════
# Email: resolution report
# ═══════════════════════════════════════════════════════════════════════════

def resolution_email_subject(incident_id: str, incident: Optional[IncidentSummary] = None) -> str:
    return f"Incident Resolved: {_incident_title(incident_id, incident)} - Case #{incident_id}"


def split_duration(minutes: int) -> Tuple[int, int]:
    """125 → (2, 5)."""
    minutes = max(int(minutes), 0)
    return minutes // 60, minutes % 60


def resolution_email_html(
    incident_id: str,
    details: ResolutionDetails,
    subscription: Subscription,
    incident: Optional[IncidentSummary] = None,
) -> str:
    hours, minutes = split_duration(details.time_to_resolution_minutes)
    base_url = settings.PUBLIC_BASE_URL.rstrip("/")
    priority = (incident.priority if incident else None) or "medium"
    location = (incident.location if incident else None) or "Location not specified"
    reported = (
        incident.created_at.strftime("%Y-%m-%d %H:%M UTC")
        if incident and incident.created_at else "Unknown"
    )

    actions_section = ""
    if details.actions_taken:
        items = "".join(f"<li>{_e(a)}</li>" for a in details.actions_taken)
        actions_section = (
            '<div style="background:white;padding:25px;border-radius:12px;margin-bottom:25px;">'
            '<h3 style="margin:0 0 15px 0;color:#1f2937;font-size:20px;">Actions Taken</h3>'
            f'<ol style="color:#4b5563;line-height:1.8;padding-left:20px;margin:0;">{items}</ol>'
            "</div>"
        )

    return f"""<div style="font-family:Arial,sans-serif;max-width:700px;margin:0 auto;background:#ffffff;">
  <div style="background:linear-gradient(135deg,#dc2626 0%,#b91c1c 100%);padding:30px 20px;text-align:center;">
    <h1 style="color:white;margin:0;font-size:28px;">Rindwa Emergency Platform</h1>
    <p style="color:white;margin:15px 0 0 0;font-size:16px;">Incident Resolution Report</p>
  </div>
  <div style="background:#10b981;padding:20px;text-align:center;">
    <h2 style="color:white;margin:0;font-size:24px;">INCIDENT RESOLVED</h2>
    <p style="color:white;margin:10px 0 0 0;">Case #{_e(incident_id)} has been successfully resolved</p>
  </div>
  <div style="padding:40px 30px;background:#f9fafb;">
    <div style="background:white;padding:25px;border-radius:12px;margin-bottom:25px;border-left:5px solid #dc2626;">
      <h3 style="margin:0 0 15px 0;color:#1f2937;">Incident Summary</h3>
      <p><strong>Title:</strong> {_e(_incident_title(incident_id, incident))}</p>
      <p><strong>Case ID:</strong> #{_e(incident_id)}</p>
      <p><strong>Priority:</strong> <span style="background:{priority_color(priority)};color:white;padding:4px 12px;border-radius:20px;font-size:12px;font-weight:bold;">{_e(priority.upper())}</span></p>
      <p><strong>Location:</strong> {_e(location)}</p>
      <p><strong>Reported:</strong> {reported}</p>
    </div>
    <div style="background:white;padding:25px;border-radius:12px;margin-bottom:25px;border-left:5px solid #10b981;">
      <h3 style="margin:0 0 15px 0;color:#1f2937;">Resolution Details</h3>
      <p><strong>Resolved By:</strong> {_e(details.resolved_by)}</p>
      <p><strong>Resolution Time:</strong> {hours}h {minutes}m</p>
      <p><strong>Final Status:</strong> <span style="background:#10b981;color:white;padding:4px 12px;border-radius:20px;font-size:12px;font-weight:bold;">{_e(details.final_status.upper())}</span></p>
    </div>
    <div style="background:white;padding:25px;border-radius:12px;margin-bottom:25px;">
      <h3 style="margin:0 0 15px 0;color:#1f2937;">Resolution Summary</h3>
      <p style="color:#4b5563;line-height:1.6;margin:0;">{_e(details.resolution_summary)}</p>
    </div>
    {actions_section}
    <div style="background:#fef2f2;padding:20px;border-radius:12px;border-left:5px solid #ef4444;">
      <h4 style="margin:0 0 10px 0;color:#dc2626;">Emergency Services</h4>
      <p style="margin:0;color:#dc2626;"><strong>Remember:</strong> For new emergencies, always call directly: {EMERGENCY_NUMBERS}</p>
    </div>
  </div>
  <div style="background:#1f2937;padding:30px 20px;text-align:center;">
    <p style="color:#9ca3af;margin:0;font-size:14px;">This incident has been officially closed. Thank you for using the Rindwa Emergency Platform.</p>
    <p style="margin:15px 0 0 0;font-size:12px;"><a href="{base_url}/unsubscribe/{_e(subscription.id)}" style="color:#6b7280;">Manage Notifications</a></p>
  </div>
</div>
"""
