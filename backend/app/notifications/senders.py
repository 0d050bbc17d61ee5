"""
senders.py — Outbound send clients (push / email / SMS).

Each client takes a channel request built by ``notifications.channels``
and performs the network call. Contract:

    await client.send(request) → SendResult(success, provider_message_id, error)

    • Provider rejections  → SendResult(success=False, error=...)
    • Transport failures   → raise ChannelSendError (dispatcher records it)
    • No credentials       → push: simulation (success, id "sim_<ms>")
                             email/SMS: provider "simulation" succeeds,
                             a real provider without credentials fails

═══════════════════════════════════════════════════════════════════════════
PROVIDERS
═══════════════════════════════════════════════════════════════════════════

    Channel   Provider   Endpoint
    ───────   ────────   ──────────────────────────────────────────────
    push      FCM        POST https://fcm.googleapis.com/fcm/send
    email     Resend     POST https://api.resend.com/emails
    sms       Twilio     POST {base}/Accounts/{sid}/Messages.json

Timeouts here are the httpx transport timeout; the dispatcher applies
its own per-send deadline on top.
"""

from __future__ import annotations

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from backend.app.core.config import settings
from backend.app.core.errors import ChannelSendError
from backend.app.notifications.channels.sms import segment_count
from backend.app.notifications.models import (
    EmailRequest,
    NotificationChannel,
    PushRequest,
    SendResult,
    SmsRequest,
)

logger = logging.getLogger(__name__)


def _synthetic_id(prefix: str = "sim") -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


class _HttpSender(ABC):
    """Lazily-created shared ``httpx.AsyncClient`` per sender."""

    channel: NotificationChannel

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._timeout = timeout_seconds or settings.CHANNEL_SEND_TIMEOUT_SECONDS
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @property
    @abstractmethod
    def simulated(self) -> bool:
        """True when sends are logged instead of performed."""

    async def _post(self, target: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self._get_client()
        try:
            return await client.post(url, **kwargs)
        except httpx.HTTPError as exc:
            raise ChannelSendError(self.channel.value, target, str(exc) or type(exc).__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Push: Firebase Cloud Messaging
# ═══════════════════════════════════════════════════════════════════════════

class FcmPushClient(_HttpSender):
    """
    FCM legacy HTTP sender.

    Without a server key every send is simulated: logged with a truncated
    token and reported as delivered with a synthetic message id.
    """

    channel = NotificationChannel.PUSH

    def __init__(
        self,
        server_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__(timeout_seconds)
        self._server_key = server_key if server_key is not None else settings.FCM_SERVER_KEY
        self._endpoint = endpoint or settings.FCM_ENDPOINT
        if not self._server_key:
            logger.warning("FCM_SERVER_KEY not configured. Push notifications will be simulated.")

    @property
    def simulated(self) -> bool:
        return not self._server_key

    async def send(self, request: PushRequest) -> SendResult:
        if self.simulated:
            notification = request.payload.get("notification", {})
            logger.info(
                "[PUSH/SIMULATED] %s → %s...: %s | priority=%s",
                request.device_class.value,
                request.token[:20],
                notification.get("title"),
                request.payload.get("priority"),
                extra={"channel": "push"},
            )
            return SendResult(success=True, provider_message_id=_synthetic_id())

        response = await self._post(
            request.token,
            self._endpoint,
            json=request.payload,
            headers={"Authorization": f"key={self._server_key}"},
        )
        return self._parse(response)

    @staticmethod
    def _parse(response: httpx.Response) -> SendResult:
        try:
            body: Dict[str, Any] = response.json()
        except ValueError:
            body = {}

        results = body.get("results") or [{}]
        first = results[0] if results else {}

        if response.is_success and body.get("success") == 1:
            return SendResult(success=True, provider_message_id=first.get("message_id"))

        error = first.get("error") or body.get("error") or "Unknown FCM error"
        logger.warning("FCM rejected push (HTTP %d): %s", response.status_code, error)
        return SendResult(success=False, error=error)


# ═══════════════════════════════════════════════════════════════════════════
# Email: Resend
# ═══════════════════════════════════════════════════════════════════════════

class ResendEmailClient(_HttpSender):

    channel = NotificationChannel.EMAIL

    def __init__(
        self,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        from_address: Optional[str] = None,
        endpoint: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__(timeout_seconds)
        self._provider = (provider or settings.EMAIL_PROVIDER).lower()
        self._api_key = api_key if api_key is not None else settings.RESEND_API_KEY
        self._from = from_address or settings.EMAIL_FROM
        self._endpoint = endpoint or settings.RESEND_ENDPOINT

    @property
    def simulated(self) -> bool:
        return self._provider == "simulation"

    async def send(self, request: EmailRequest) -> SendResult:
        if not request.to or not request.subject or not request.body:
            return SendResult(success=False, error="Missing required fields: to, subject, or body")

        if self.simulated:
            logger.info(
                "[EMAIL/SIMULATED] → %s: Subject='%s' (%d bytes html)",
                request.to, request.subject, len(request.body),
                extra={"channel": "email"},
            )
            return SendResult(success=True, provider_message_id=_synthetic_id())

        if self._provider != "resend":
            return SendResult(success=False, error=f"Unknown email provider: {self._provider}")
        if not self._api_key:
            return SendResult(success=False, error="Resend API key not configured")

        response = await self._post(
            request.to,
            self._endpoint,
            json={
                "from": self._from,
                "to": request.to,
                "subject": request.subject,
                "html": request.body,
            },
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        if response.is_success:
            message_id = response.json().get("id") or "unknown"
            logger.info("Email sent to %s (id=%s)", request.to, message_id)
            return SendResult(success=True, provider_message_id=message_id)

        return SendResult(
            success=False,
            error=f"Resend HTTP {response.status_code}: {response.text[:200]}",
        )


# ═══════════════════════════════════════════════════════════════════════════
# SMS: Twilio
# ═══════════════════════════════════════════════════════════════════════════

class TwilioSmsClient(_HttpSender):

    channel = NotificationChannel.SMS

    def __init__(
        self,
        provider: Optional[str] = None,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        super().__init__(timeout_seconds)
        self._provider = (provider or settings.SMS_PROVIDER).lower()
        self._sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        self._token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self._from = from_number if from_number is not None else settings.TWILIO_PHONE_NUMBER
        self._api_base = (api_base or settings.TWILIO_API_BASE).rstrip("/")

    @property
    def simulated(self) -> bool:
        return self._provider == "simulation"

    async def send(self, request: SmsRequest) -> SendResult:
        if not request.to or not request.message:
            return SendResult(success=False, error="Missing required fields: to or message")

        if self.simulated:
            logger.info(
                "[SMS/SIMULATED] → %s: %d chars, %d segment(s)",
                request.to, len(request.message), segment_count(request.message),
                extra={"channel": "sms"},
            )
            return SendResult(success=True, provider_message_id=_synthetic_id())

        if self._provider != "twilio":
            return SendResult(success=False, error=f"Unknown SMS provider: {self._provider}")
        if not (self._sid and self._sid.strip() and self._token and self._token.strip()):
            return SendResult(success=False, error="Twilio credentials not configured")
        if not self._from:
            return SendResult(success=False, error="Twilio phone number not configured")

        response = await self._post(
            request.to,
            f"{self._api_base}/Accounts/{self._sid}/Messages.json",
            data={"Body": request.message, "From": self._from, "To": request.to},
            auth=(self._sid, self._token),
        )
        if response.is_success:
            sid = response.json().get("sid")
            logger.info("SMS sent to %s (sid=%s)", request.to, sid)
            return SendResult(success=True, provider_message_id=sid)

        try:
            error = response.json().get("message") or f"Twilio HTTP {response.status_code}"
        except ValueError:
            error = f"Twilio HTTP {response.status_code}"
        return SendResult(success=False, error=error)
