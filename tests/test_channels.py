"""
test_channels.py — Tests for per-channel request adapters.

Covers:
    • Device-class resolution (unknown → web)
    • iOS / Android / web push payload shapes
    • Priority propagation into payloads
    • Email and SMS envelopes, SMS segment counting

Run with:
    pytest tests/test_channels.py -v
"""

from __future__ import annotations

import pytest

from backend.app.notifications.channels import email, push, sms
from backend.app.notifications.models import (
    DeviceClass,
    PushAction,
    PushNotification,
    PushPriority,
)


def _make_notification(priority: PushPriority = PushPriority.NORMAL, **overrides) -> PushNotification:
    data = dict(
        title="🚨 Incident Update #42",
        body="Status: IN_PROGRESS - Crew on site",
        data={"type": "incident_update", "incidentId": "42"},
        actions=[PushAction("view_details", "View Details", "info")],
        priority=priority,
        sound="default",
    )
    data.update(overrides)
    return PushNotification(**data)


# ═══════════════════════════════════════════════════════════════════════════
# Device class resolution
# ═══════════════════════════════════════════════════════════════════════════

class TestResolveDeviceClass:

    @pytest.mark.parametrize("value,expected", [
        ("ios", DeviceClass.IOS),
        ("Android", DeviceClass.ANDROID),
        (DeviceClass.WEB, DeviceClass.WEB),
        ("smartwatch", DeviceClass.WEB),
        ("", DeviceClass.WEB),
        (None, DeviceClass.ANDROID),
    ])
    def test_resolution(self, value, expected):
        assert push.resolve_device_class(value) == expected


# ═══════════════════════════════════════════════════════════════════════════
# Push payloads
# ═══════════════════════════════════════════════════════════════════════════

class TestCommonEnvelope:

    @pytest.mark.parametrize("device", ["ios", "android", "web"])
    def test_envelope(self, device):
        request = push.build_request("tok-1", device, _make_notification())
        assert request.token == "tok-1"
        assert request.payload["to"] == "tok-1"
        assert request.payload["data"]["click_action"] == "FLUTTER_NOTIFICATION_CLICK"
        assert request.payload["data"]["incidentId"] == "42"

    def test_high_priority(self):
        request = push.build_request("tok", "android", _make_notification(PushPriority.HIGH))
        assert request.payload["priority"] == "high"
        assert request.payload["android"]["notification"]["priority"] == "high"

    def test_normal_priority(self):
        request = push.build_request("tok", "android", _make_notification())
        assert request.payload["priority"] == "normal"
        assert request.payload["android"]["notification"]["priority"] == "default"

    def test_data_not_mutated(self):
        notification = _make_notification()
        push.build_request("tok", "web", notification)
        assert "click_action" not in notification.data


class TestIosPayload:

    def test_aps_block(self):
        request = push.build_request("tok", "ios", _make_notification(sound="emergency"))
        aps = request.payload["apns"]["payload"]["aps"]
        assert aps["alert"] == {
            "title": "🚨 Incident Update #42",
            "body": "Status: IN_PROGRESS - Crew on site",
        }
        assert aps["sound"] == "emergency"
        assert aps["badge"] == 1
        assert aps["mutable-content"] == 1
        assert aps["category"] == "INCIDENT_UPDATE"

    def test_defaults(self):
        request = push.build_request("tok", "ios", _make_notification(sound=None))
        assert request.payload["notification"]["sound"] == "default"
        assert request.payload["notification"]["badge"] == 1

    def test_no_web_blocks(self):
        request = push.build_request("tok", "ios", _make_notification())
        assert "webpush" not in request.payload
        assert "android" not in request.payload


class TestAndroidPayload:

    def test_notification_block(self):
        request = push.build_request("tok", "android", _make_notification())
        notification = request.payload["android"]["notification"]
        assert notification["icon"] == "ic_notification"
        assert notification["color"] == "#dc2626"
        assert notification["channel_id"] == "emergency_updates"
        assert notification["visibility"] == "public"
        assert request.payload["notification"]["click_action"] == "FLUTTER_NOTIFICATION_CLICK"


class TestWebPayload:

    def test_actions_and_link(self):
        request = push.build_request("tok", "web", _make_notification())
        notification = request.payload["notification"]
        assert notification["actions"] == [
            {"action": "view_details", "title": "View Details", "icon": "/icons/info.png"},
        ]
        assert request.payload["webpush"]["fcm_options"]["link"] == "/incidents"

    def test_require_interaction_follows_priority(self):
        high = push.build_request("tok", "web", _make_notification(PushPriority.HIGH))
        normal = push.build_request("tok", "web", _make_notification())
        assert high.payload["notification"]["requireInteraction"] is True
        assert normal.payload["notification"]["requireInteraction"] is False

    def test_unknown_device_shaped_as_web(self):
        request = push.build_request("tok", "smartwatch", _make_notification())
        assert request.device_class == DeviceClass.WEB
        assert "webpush" in request.payload

    def test_missing_device_shaped_as_android(self):
        request = push.build_request("tok", None, _make_notification())
        assert request.device_class == DeviceClass.ANDROID
        assert "android" in request.payload
        assert "webpush" not in request.payload


# ═══════════════════════════════════════════════════════════════════════════
# Email / SMS
# ═══════════════════════════════════════════════════════════════════════════

class TestEmailAndSms:

    def test_email_envelope(self):
        request = email.build_request("a@example.rw", "Subject", "<p>Body</p>")
        assert (request.to, request.subject, request.body) == ("a@example.rw", "Subject", "<p>Body</p>")

    def test_sms_envelope(self):
        request = sms.build_request("+250788000000", "hello")
        assert request.to == "+250788000000"
        assert request.message == "hello"

    @pytest.mark.parametrize("length,segments", [(0, 0), (1, 1), (160, 1), (161, 2), (320, 2), (321, 3)])
    def test_segment_count(self, length, segments):
        assert sms.segment_count("x" * length) == segments
