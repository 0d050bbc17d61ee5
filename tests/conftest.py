"""
Shared fixtures: fake send clients, a controllable clock and a service
wired to both.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from backend.app.core.errors import ChannelSendError
from backend.app.notifications.models import (
    EmailRequest,
    PushRequest,
    SendResult,
    SmsRequest,
)
from backend.app.notifications.service import NotificationService


# 12:00 in Kigali (UTC+2)
NOON_KIGALI = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)


def request_target(request) -> str:
    if isinstance(request, PushRequest):
        return request.token
    if isinstance(request, (EmailRequest, SmsRequest)):
        return request.to
    raise TypeError(f"Unexpected request {request!r}")


class FakeSendClient:
    """
    In-memory send client.

    Targets in ``reject`` get a provider rejection, targets in ``explode``
    raise ChannelSendError, targets in ``hang`` never answer.
    """

    def __init__(self, channel: str, delay: float = 0.0):
        self.channel = channel
        self.delay = delay
        self.simulated = False
        self.requests = []
        self.reject = set()
        self.explode = set()
        self.hang = set()
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def targets(self):
        return [request_target(r) for r in self.requests]

    async def send(self, request) -> SendResult:
        target = request_target(request)
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if target in self.hang:
                await asyncio.sleep(3600)
            await asyncio.sleep(self.delay)
            if target in self.explode:
                raise ChannelSendError(self.channel, target, "connection reset")
            if target in self.reject:
                return SendResult(success=False, error="InvalidRegistration")
            return SendResult(success=True, provider_message_id=f"{self.channel}-{len(self.requests)}")
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        pass


class FixedClock:
    def __init__(self, now: datetime = NOON_KIGALI):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def push_client():
    return FakeSendClient("push")


@pytest.fixture
def email_client():
    return FakeSendClient("email")


@pytest.fixture
def sms_client():
    return FakeSendClient("sms")


@pytest.fixture
def service(push_client, email_client, sms_client, clock):
    return NotificationService(
        push_client=push_client,
        email_client=email_client,
        sms_client=sms_client,
        max_concurrency=20,
        send_timeout_seconds=0.2,
        retention_days=7,
        clock=clock,
    )
