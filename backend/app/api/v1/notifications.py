"""
FastAPI route: citizen notification endpoints.

Provides endpoints to:
    POST   /api/v1/notifications/subscriptions                 — subscribe
    GET    /api/v1/notifications/subscriptions/{id}            — fetch one
    DELETE /api/v1/notifications/subscriptions/{id}            — unsubscribe
    PATCH  /api/v1/notifications/subscriptions/{id}/preferences
    GET    /api/v1/notifications/stats                         — registry + ledger stats
    POST   /api/v1/notifications/incidents/{id}/updates        — progress update
    POST   /api/v1/notifications/incidents/{id}/resolution     — resolution flow
    POST   /api/v1/notifications/broadcast                     — emergency broadcast
    POST   /api/v1/notifications/sweep                         — retention sweep
    GET    /api/v1/notifications/deliveries                    — delivery ledger
    GET    /api/v1/notifications/deliveries/latest             — latest per target
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.notifications.models import (
    ContactInfo,
    IncidentSummary,
    NotificationChannel,
    NotificationUpdate,
    ResolutionDetails,
)
from backend.app.notifications.service import (
    NotificationService,
    get_notification_service,
)

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


# ---------------------------------------------------------------------------
# Request / Response Schemas
# ---------------------------------------------------------------------------

class QuietHoursInput(BaseModel):
    enabled: Optional[bool] = None
    start: Optional[str] = Field(None, examples=["22:00"], pattern=r"^\d{1,2}:\d{2}$")
    end: Optional[str] = Field(None, examples=["07:00"], pattern=r"^\d{1,2}:\d{2}$")


class PreferencesInput(BaseModel):
    """Partial preferences; omitted fields keep their current value."""
    push: Optional[bool] = None
    email: Optional[bool] = None
    sms: Optional[bool] = None
    critical_only: Optional[bool] = None
    quiet_hours: Optional[QuietHoursInput] = None


class ContactInput(BaseModel):
    push_token: Optional[str] = Field(None, description="FCM registration token")
    device_class: Optional[str] = Field(None, examples=["android"], description="ios / android / web")
    email: Optional[str] = Field(None, examples=["citizen@example.rw"])
    phone: Optional[str] = Field(None, examples=["+250788000000"])


class SubscribeRequest(BaseModel):
    incident_id: str = Field(..., examples=["42"])
    contact: ContactInput
    preferences: Optional[PreferencesInput] = None
    timezone: Optional[str] = Field(None, examples=["Africa/Kigali"])


class IncidentInput(BaseModel):
    title: str = ""
    priority: str = Field("medium", examples=["high"])
    location: Optional[str] = None


class ProgressUpdateRequest(BaseModel):
    status: str = Field(..., examples=["in_progress"])
    message: str = Field(..., examples=["Fire crew arrived on site"])
    updated_by: str = Field(..., examples=["Station 3"])
    priority: Optional[str] = Field(None, examples=["critical"])
    location: Optional[str] = None
    estimated_time: Optional[str] = Field(None, examples=["20 minutes"])
    action_required: Optional[bool] = None
    incident: Optional[IncidentInput] = None


class ResolutionRequest(BaseModel):
    resolved_by: str = Field(..., examples=["Officer Uwase"])
    resolution_summary: str = Field(..., examples=["Fire extinguished, no casualties."])
    final_status: str = "resolved"
    time_to_resolution_minutes: int = Field(0, ge=0)
    actions_taken: List[str] = Field(default_factory=list)
    incident: Optional[IncidentInput] = None


class BroadcastRequest(BaseModel):
    title: str = Field(..., examples=["Flash flood warning"])
    message: str = Field(..., examples=["Move to higher ground immediately."])
    priority: str = Field("high", examples=["high"])
    device_classes: Optional[List[str]] = Field(None, examples=[["android", "ios"]])


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def _preferences_dict(prefs: Optional[PreferencesInput]) -> Dict[str, Any]:
    return prefs.model_dump(exclude_none=True) if prefs is not None else {}


def _incident(incident_id: str, data: Optional[IncidentInput]) -> Optional[IncidentSummary]:
    if data is None:
        return None
    return IncidentSummary(id=incident_id, **data.model_dump())


def _parse_channel(channel: Optional[str]) -> Optional[NotificationChannel]:
    if channel is None:
        return None
    try:
        return NotificationChannel(channel.lower())
    except ValueError:
        valid = [c.value for c in NotificationChannel]
        raise ValidationError(
            f"Invalid channel '{channel}'. Must be one of: {valid}", field="channel",
        )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/subscriptions",
    status_code=201,
    summary="Subscribe to incident updates",
)
async def subscribe(
    request: SubscribeRequest,
    service: NotificationService = Depends(get_notification_service),
):
    subscription = await service.subscribe(
        request.incident_id,
        ContactInfo(**request.contact.model_dump()),
        _preferences_dict(request.preferences),
        request.timezone,
    )
    return subscription.to_dict()


@router.get("/subscriptions/{subscription_id}", summary="Get a subscription")
async def get_subscription(
    subscription_id: str,
    service: NotificationService = Depends(get_notification_service),
):
    subscription = service.get_subscription(subscription_id)
    if subscription is None:
        raise NotFoundError("Subscription", subscription_id=subscription_id)
    return subscription.to_dict()


@router.delete(
    "/subscriptions/{subscription_id}",
    summary="Unsubscribe",
)
async def unsubscribe(
    subscription_id: str,
    service: NotificationService = Depends(get_notification_service),
):
    """Unknown or already-inactive ids answer 200 with ``unsubscribed: false``."""
    return {
        "subscription_id": subscription_id,
        "unsubscribed": service.unsubscribe(subscription_id),
    }


@router.patch(
    "/subscriptions/{subscription_id}/preferences",
    summary="Update notification preferences",
)
async def update_preferences(
    subscription_id: str,
    request: PreferencesInput,
    service: NotificationService = Depends(get_notification_service),
):
    if not service.update_preferences(subscription_id, _preferences_dict(request)):
        return {"subscription_id": subscription_id, "updated": False}
    return {**service.get_subscription(subscription_id).to_dict(), "updated": True}


@router.get("/stats", summary="Subscription and delivery statistics")
async def get_stats(service: NotificationService = Depends(get_notification_service)):
    return service.get_stats().to_dict()


@router.post(
    "/incidents/{incident_id}/updates",
    summary="Dispatch an incident progress update",
)
async def send_progress_update(
    incident_id: str,
    request: ProgressUpdateRequest,
    service: NotificationService = Depends(get_notification_service),
):
    update = NotificationUpdate(**request.model_dump(exclude={"incident"}))
    summary = await service.send_progress_update(
        incident_id, update, _incident(incident_id, request.incident),
    )
    return summary.to_dict()


@router.post(
    "/incidents/{incident_id}/resolution",
    summary="Send resolution report and final update",
)
async def send_resolution(
    incident_id: str,
    request: ResolutionRequest,
    service: NotificationService = Depends(get_notification_service),
):
    details = ResolutionDetails(**request.model_dump(exclude={"incident"}))
    summary = await service.send_resolution(
        incident_id, details, _incident(incident_id, request.incident),
    )
    return summary.to_dict()


@router.post("/broadcast", summary="Region-wide emergency push")
async def broadcast(
    request: BroadcastRequest,
    service: NotificationService = Depends(get_notification_service),
):
    result = await service.broadcast_emergency_alert(
        request.title, request.message, request.priority, request.device_classes,
    )
    return result.to_dict()


@router.post("/sweep", summary="Run the retention sweep")
async def sweep(service: NotificationService = Depends(get_notification_service)):
    return service.sweep().to_dict()


@router.get("/deliveries", summary="Delivery ledger")
async def list_deliveries(
    target: Optional[str] = Query(None),
    channel: Optional[str] = Query(None, description="push / email / sms"),
    service: NotificationService = Depends(get_notification_service),
):
    records = service.delivery_records(target=target, channel=_parse_channel(channel))
    return {"count": len(records), "records": [r.to_dict() for r in records]}


@router.get("/deliveries/latest", summary="Latest delivery outcome per target")
async def latest_deliveries(service: NotificationService = Depends(get_notification_service)):
    return {
        target: record.to_dict()
        for target, record in service.latest_by_target().items()
    }
