"""
push.py — Push channel adapter (FCM legacy HTTP payloads).

Turns a generic ``PushNotification`` into the FCM request body for one
device class. Pure: no I/O, no clock.

═══════════════════════════════════════════════════════════════════════════
PAYLOAD SHAPES
═══════════════════════════════════════════════════════════════════════════

Common envelope:

    {"to": <token>, "priority": "high"|"normal",
     "data": {...notification.data, "click_action": "FLUTTER_NOTIFICATION_CLICK"}}

    Device     Extra blocks
    ───────    ───────────────────────────────────────────────────────────
    ios        notification{title, body, sound, badge, mutable_content,
               category} + apns.payload.aps{alert, sound, badge,
               mutable-content, category} + apns.fcm_options.image
    android    notification{title, body, icon, color, sound,
               click_action, channel_id} + android.notification{...,
               priority, visibility: public, image}
    web        notification{title, body, icon, image, badge,
               requireInteraction, actions[]} + webpush.fcm_options.link
    (none)     same as android
    (other)    same as web, including an empty string
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from backend.app.notifications.models import (
    DeviceClass,
    PushNotification,
    PushPriority,
    PushRequest,
)

CLICK_ACTION = "FLUTTER_NOTIFICATION_CLICK"
IOS_CATEGORY = "INCIDENT_UPDATE"
ANDROID_ICON = "ic_notification"
ANDROID_COLOR = "#dc2626"
ANDROID_CHANNEL_ID = "emergency_updates"
WEB_ICON = "/icons/notification-icon.png"
WEB_BADGE = "/icons/badge-icon.png"
WEB_LINK = "/incidents"
DEFAULT_SOUND = "default"
DEFAULT_BADGE = 1


def resolve_device_class(value: Union[DeviceClass, str, None]) -> DeviceClass:
    """Map any input onto a known device class: omitted → android, unknown → web."""
    if isinstance(value, DeviceClass):
        return value
    if value is None:
        return DeviceClass.ANDROID
    try:
        return DeviceClass(str(value).lower())
    except ValueError:
        return DeviceClass.WEB


def _base_payload(token: str, notification: PushNotification) -> Dict[str, Any]:
    return {
        "to": token,
        "priority": "high" if notification.priority == PushPriority.HIGH else "normal",
        "data": {**notification.data, "click_action": CLICK_ACTION},
    }


def _ios_payload(notification: PushNotification) -> Dict[str, Any]:
    sound = notification.sound or DEFAULT_SOUND
    badge = notification.badge or DEFAULT_BADGE
    return {
        "notification": {
            "title": notification.title,
            "body": notification.body,
            "sound": sound,
            "badge": badge,
            "mutable_content": True,
            "category": IOS_CATEGORY,
        },
        "apns": {
            "payload": {
                "aps": {
                    "alert": {
                        "title": notification.title,
                        "body": notification.body,
                    },
                    "sound": sound,
                    "badge": badge,
                    "mutable-content": 1,
                    "category": IOS_CATEGORY,
                },
            },
            "fcm_options": {"image": notification.image_url},
        },
    }


def _android_payload(notification: PushNotification) -> Dict[str, Any]:
    sound = notification.sound or DEFAULT_SOUND
    return {
        "notification": {
            "title": notification.title,
            "body": notification.body,
            "icon": ANDROID_ICON,
            "color": ANDROID_COLOR,
            "sound": sound,
            "click_action": CLICK_ACTION,
            "channel_id": ANDROID_CHANNEL_ID,
        },
        "android": {
            "notification": {
                "title": notification.title,
                "body": notification.body,
                "icon": ANDROID_ICON,
                "color": ANDROID_COLOR,
                "sound": sound,
                "channel_id": ANDROID_CHANNEL_ID,
                "priority": "high" if notification.priority == PushPriority.HIGH else "default",
                "visibility": "public",
                "image": notification.image_url,
            },
        },
    }


def _web_actions(notification: PushNotification) -> List[Dict[str, Optional[str]]]:
    return [
        {
            "action": a.action,
            "title": a.title,
            "icon": f"/icons/{a.icon}.png" if a.icon else None,
        }
        for a in notification.actions
    ]


def _web_payload(notification: PushNotification) -> Dict[str, Any]:
    return {
        "notification": {
            "title": notification.title,
            "body": notification.body,
            "icon": WEB_ICON,
            "image": notification.image_url,
            "badge": WEB_BADGE,
            "requireInteraction": notification.priority == PushPriority.HIGH,
            "actions": _web_actions(notification),
        },
        "webpush": {"fcm_options": {"link": WEB_LINK}},
    }


_BUILDERS = {
    DeviceClass.IOS: _ios_payload,
    DeviceClass.ANDROID: _android_payload,
    DeviceClass.WEB: _web_payload,
}


def build_request(
    token: str,
    device_class: Union[DeviceClass, str, None],
    notification: PushNotification,
) -> PushRequest:
    """
    Build the FCM request for one device.

    Parameters
    ----------
    token : str
        Device registration token.
    device_class : DeviceClass | str | None
        Omitted (None) shapes as android; unrecognised values as web.
    notification : PushNotification

    Returns
    -------
    PushRequest
    """
    resolved = resolve_device_class(device_class)
    payload = _base_payload(token, notification)
    payload.update(_BUILDERS[resolved](notification))
    return PushRequest(token=token, device_class=resolved, payload=payload)
