"""
test_senders.py — Tests for outbound provider clients.

Covers:
    • Simulation mode (no credentials / provider "simulation")
    • Misconfiguration errors (missing key, credentials, sender number)
    • Request shape and response parsing against a mocked transport
    • Transport failures raised as ChannelSendError

Run with:
    pytest tests/test_senders.py -v
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from backend.app.core.errors import ChannelSendError
from backend.app.notifications.models import (
    DeviceClass,
    EmailRequest,
    PushRequest,
    SmsRequest,
)
from backend.app.notifications.senders import (
    FcmPushClient,
    ResendEmailClient,
    TwilioSmsClient,
)


def _push_request(token: str = "tok-123") -> PushRequest:
    return PushRequest(
        token=token,
        device_class=DeviceClass.ANDROID,
        payload={"to": token, "priority": "high", "notification": {"title": "Hi"}},
    )


def _email_request(**overrides) -> EmailRequest:
    data = dict(to="a@example.rw", subject="Update", body="<p>hi</p>")
    data.update(overrides)
    return EmailRequest(**data)


def _sms_request(**overrides) -> SmsRequest:
    data = dict(to="+250788000000", message="hello")
    data.update(overrides)
    return SmsRequest(**data)


def _mock(client, handler):
    """Route the client's HTTP calls through ``handler``; returns seen requests."""
    seen = []

    def recorder(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client._http_client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return seen


# ═══════════════════════════════════════════════════════════════════════════
# Push: FCM
# ═══════════════════════════════════════════════════════════════════════════

class TestFcmPushClient:

    def test_simulated_without_key(self):
        client = FcmPushClient(server_key="")
        assert client.simulated
        result = asyncio.run(client.send(_push_request()))
        assert result.success
        assert result.provider_message_id.startswith("sim_")

    def test_success(self):
        client = FcmPushClient(server_key="secret", endpoint="https://fcm.test/send")
        seen = _mock(client, lambda r: httpx.Response(
            200, json={"success": 1, "failure": 0, "results": [{"message_id": "m-1"}]},
        ))
        result = asyncio.run(client.send(_push_request()))

        assert result.success
        assert result.provider_message_id == "m-1"
        assert seen[0].headers["Authorization"] == "key=secret"
        assert json.loads(seen[0].content)["to"] == "tok-123"

    def test_rejection(self):
        client = FcmPushClient(server_key="secret")
        _mock(client, lambda r: httpx.Response(
            200, json={"success": 0, "failure": 1, "results": [{"error": "NotRegistered"}]},
        ))
        result = asyncio.run(client.send(_push_request()))
        assert not result.success
        assert result.error == "NotRegistered"

    def test_http_error_without_body(self):
        client = FcmPushClient(server_key="secret")
        _mock(client, lambda r: httpx.Response(500, text="oops"))
        result = asyncio.run(client.send(_push_request()))
        assert not result.success
        assert result.error == "Unknown FCM error"

    def test_transport_failure_raises(self):
        client = FcmPushClient(server_key="secret")

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        _mock(client, refuse)
        with pytest.raises(ChannelSendError) as exc_info:
            asyncio.run(client.send(_push_request()))
        assert exc_info.value.details == {"channel": "push", "target": "tok-123"}
        assert "connection refused" in exc_info.value.reason


# ═══════════════════════════════════════════════════════════════════════════
# Email: Resend
# ═══════════════════════════════════════════════════════════════════════════

class TestResendEmailClient:

    def test_simulation(self):
        client = ResendEmailClient(provider="simulation")
        result = asyncio.run(client.send(_email_request()))
        assert result.success
        assert client.simulated

    def test_missing_fields(self):
        client = ResendEmailClient(provider="simulation")
        result = asyncio.run(client.send(_email_request(subject="")))
        assert not result.success
        assert result.error.startswith("Missing required fields")

    def test_missing_api_key(self):
        client = ResendEmailClient(provider="resend", api_key="")
        result = asyncio.run(client.send(_email_request()))
        assert not result.success
        assert result.error == "Resend API key not configured"

    def test_unknown_provider(self):
        client = ResendEmailClient(provider="carrier-pigeon", api_key="k")
        result = asyncio.run(client.send(_email_request()))
        assert not result.success

    def test_success(self):
        client = ResendEmailClient(
            provider="resend", api_key="re_123", from_address="Alerts <alerts@example.rw>",
            endpoint="https://resend.test/emails",
        )
        seen = _mock(client, lambda r: httpx.Response(200, json={"id": "email-1"}))
        result = asyncio.run(client.send(_email_request()))

        assert result.success
        assert result.provider_message_id == "email-1"
        body = json.loads(seen[0].content)
        assert body == {
            "from": "Alerts <alerts@example.rw>",
            "to": "a@example.rw",
            "subject": "Update",
            "html": "<p>hi</p>",
        }
        assert seen[0].headers["Authorization"] == "Bearer re_123"

    def test_provider_error(self):
        client = ResendEmailClient(provider="resend", api_key="re_123")
        _mock(client, lambda r: httpx.Response(422, text="invalid from"))
        result = asyncio.run(client.send(_email_request()))
        assert not result.success
        assert "422" in result.error


# ═══════════════════════════════════════════════════════════════════════════
# SMS: Twilio
# ═══════════════════════════════════════════════════════════════════════════

class TestTwilioSmsClient:

    def test_simulation(self):
        client = TwilioSmsClient(provider="simulation")
        result = asyncio.run(client.send(_sms_request()))
        assert result.success

    def test_missing_credentials(self):
        client = TwilioSmsClient(provider="twilio", account_sid="", auth_token="", from_number="+1")
        result = asyncio.run(client.send(_sms_request()))
        assert not result.success
        assert result.error == "Twilio credentials not configured"

    def test_missing_sender(self):
        client = TwilioSmsClient(provider="twilio", account_sid="AC1", auth_token="t", from_number="")
        result = asyncio.run(client.send(_sms_request()))
        assert result.error == "Twilio phone number not configured"

    def test_missing_fields(self):
        client = TwilioSmsClient(provider="simulation")
        result = asyncio.run(client.send(_sms_request(message="")))
        assert not result.success

    def test_success(self):
        client = TwilioSmsClient(
            provider="twilio", account_sid="AC1", auth_token="t", from_number="+15550001",
            api_base="https://twilio.test/2010-04-01",
        )
        seen = _mock(client, lambda r: httpx.Response(201, json={"sid": "SM1"}))
        result = asyncio.run(client.send(_sms_request()))

        assert result.success
        assert result.provider_message_id == "SM1"
        assert seen[0].url.path == "/2010-04-01/Accounts/AC1/Messages.json"
        form = dict(pair.split("=", 1) for pair in seen[0].content.decode().split("&"))
        assert form["From"] == "%2B15550001"
        assert seen[0].headers["Authorization"].startswith("Basic ")

    def test_provider_error_message(self):
        client = TwilioSmsClient(provider="twilio", account_sid="AC1", auth_token="t", from_number="+1")
        _mock(client, lambda r: httpx.Response(400, json={"message": "Invalid 'To' number"}))
        result = asyncio.run(client.send(_sms_request()))
        assert result.error == "Invalid 'To' number"
