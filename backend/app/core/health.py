"""
Health check aggregation — deep health probe for the notification engine.

Checks:
    • Push provider (FCM)       — live credentials or simulation
    • Email provider (Resend)   — live credentials or simulation
    • SMS provider (Twilio)     — live credentials or simulation
    • Engine state              — subscription registry + delivery ledger sizes

A provider running in simulation mode reports DEGRADED: the engine works,
but nothing leaves the process.

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()


def check_provider(name: str, client: Any) -> ComponentHealth:
    """Report a send client as HEALTHY (live) or DEGRADED (simulated)."""
    comp = ComponentHealth(name=name)
    start = time.monotonic()

    if getattr(client, "simulated", False):
        comp.status = HealthStatus.DEGRADED
        comp.message = "Simulation mode: sends are logged, not delivered"
    else:
        comp.status = HealthStatus.HEALTHY
        comp.message = "Provider credentials configured"

    comp.details = {"client": type(client).__name__}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


def check_engine(service) -> ComponentHealth:
    """Registry and ledger sizes."""
    comp = ComponentHealth(name="engine")
    start = time.monotonic()
    try:
        stats = service.get_stats()
        comp.message = "Registry and ledger available"
        comp.details = {
            "subscriptions": stats.total_subscriptions,
            "active_subscriptions": stats.active_subscriptions,
            "delivery_records": stats.delivery_success_count + stats.delivery_failure_count,
        }
    except Exception as e:
        logger.exception("Engine health check failed")
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e)
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(service) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    report.components.extend([
        check_provider("push", service.push_client),
        check_provider("email", service.email_client),
        check_provider("sms", service.sms_client),
        check_engine(service),
    ])

    # Aggregate status
    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
