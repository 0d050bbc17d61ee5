"""
email.py — Email channel adapter.

Assembles the outbound envelope only; subject and HTML body come from
``notifications.templates``. Pure pass-through, no I/O.
"""

from __future__ import annotations

from backend.app.notifications.models import EmailRequest


def build_request(to: str, subject: str, html_body: str) -> EmailRequest:
    return EmailRequest(to=to, subject=subject, body=html_body)
