"""
sms.py — SMS channel adapter.

Wraps already-rendered text into an ``SmsRequest``. Message text comes
from ``notifications.templates.update_sms``; nothing is truncated here,
segmenting is the carrier's job.
"""

from __future__ import annotations

from backend.app.notifications.models import SmsRequest

SMS_SEGMENT_GSM7 = 160


def build_request(to: str, message: str) -> SmsRequest:
    return SmsRequest(to=to, message=message)


def segment_count(message: str) -> int:
    """Number of GSM 7-bit segments needed (used in simulated send logs)."""
    if not message:
        return 0
    return 1 + (len(message) - 1) // SMS_SEGMENT_GSM7
