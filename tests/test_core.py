"""
test_core.py — Tests for cross-cutting infrastructure.

Covers:
    • Settings defaults
    • JSON / pretty log formatting with dispatch fields
    • Error hierarchy → JSON error responses

Run with:
    pytest tests/test_core.py -v
"""

from __future__ import annotations

import json
import logging

from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.app.core.config import Settings
from backend.app.core.errors import (
    ChannelSendError,
    InvalidContactError,
    NotFoundError,
    ValidationError,
    register_error_handlers,
)
from backend.app.core.logging_config import (
    JSONFormatter,
    PrettyFormatter,
    set_request_context,
)


def _log_record(msg: str = "Dispatch done", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "backend.app.notifications.dispatcher", logging.INFO, __file__, 10, msg, (), None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ═══════════════════════════════════════════════════════════════════════════
# Config
# ═══════════════════════════════════════════════════════════════════════════

class TestSettings:

    def test_engine_defaults(self):
        s = Settings(_env_file=None)
        assert s.DISPATCH_MAX_CONCURRENCY == 20
        assert s.RETENTION_DAYS == 7
        assert s.DEFAULT_TIMEZONE == "Africa/Kigali"
        assert s.EMAIL_PROVIDER == "simulation"

    def test_production_flag(self):
        assert Settings(_env_file=None, ENVIRONMENT="production").is_production
        assert not Settings(_env_file=None, ENVIRONMENT="development").is_production


# ═══════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════

class TestLogFormatting:

    def teardown_method(self):
        set_request_context()

    def test_json_includes_dispatch_fields(self):
        entry = json.loads(JSONFormatter().format(
            _log_record(incident_id="42", channel="push", recipient_count=3),
        ))
        assert entry["message"] == "Dispatch done"
        assert entry["incident_id"] == "42"
        assert entry["channel"] == "push"
        assert entry["recipient_count"] == 3
        assert "subscription_id" not in entry

    def test_json_includes_request_context(self):
        set_request_context(request_id="abc123", endpoint="/health")
        entry = json.loads(JSONFormatter().format(_log_record()))
        assert entry["context"]["request_id"] == "abc123"

    def test_pretty_tags(self):
        line = PrettyFormatter().format(_log_record(incident_id="42"))
        assert "Dispatch done" in line
        assert "incident_id=42" in line


# ═══════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════

class TestErrorHandlers:

    def _client(self, exc: Exception) -> TestClient:
        app = FastAPI()
        register_error_handlers(app)

        @app.get("/boom")
        async def boom():
            raise exc

        return TestClient(app, raise_server_exceptions=False)

    def test_not_found(self):
        response = self._client(NotFoundError("Subscription", subscription_id="sub_x")).get("/boom")
        body = response.json()["error"]
        assert response.status_code == 404
        assert body["code"] == "NOT_FOUND"
        assert body["details"]["subscription_id"] == "sub_x"
        assert body["path"] == "/boom"

    def test_invalid_contact(self):
        response = self._client(InvalidContactError()).get("/boom")
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_CONTACT"

    def test_validation_field(self):
        response = self._client(ValidationError("bad tz", field="timezone")).get("/boom")
        assert response.json()["error"]["details"] == {"field": "timezone"}

    def test_channel_send_error(self):
        exc = ChannelSendError("sms", "+250788000000", "timeout")
        assert exc.reason == "timeout"
        response = self._client(exc).get("/boom")
        assert response.status_code == 502
        assert response.json()["error"]["code"] == "CHANNEL_SEND_FAILURE"

    def test_unhandled(self):
        response = self._client(RuntimeError("kaboom")).get("/boom")
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_ERROR"
