"""
Telemetry reporting

Failover outcomes are reported to an HTTP collector. Sending never raises;
a failed send is logged and reported as ``{"sent": False}``.
"""

from __future__ import annotations

import locale
import uuid

from datetime import datetime, timezone
from typing import Any

import aiohttp
import structlog

from cloudfailover.constants import NAME, VERSION
from cloudfailover.core.errors import format_error

logger = structlog.get_logger(__name__)


class TelemetryClient:
    """Posts telemetry records to a collector endpoint."""

    def __init__(
        self,
        endpoint: str | None = None,
        enabled: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.endpoint = endpoint
        self.enabled = enabled and bool(endpoint)
        self.timeout = timeout

    def create_telemetry_data(
        self,
        environment: str | None,
        action: str | None = None,
        endpoint: str | None = None,
        result: str | None = None,
        result_summary: str | None = None,
        ip_failover: bool = False,
        route_failover: bool = False,
        region: str | None = None,
        customer_id: str | None = None,
        failover: dict[str, Any] | None = None,
        user_agent: str | None = None,
    ) -> dict[str, Any]:
        """Build a telemetry record."""
        return {
            "customerId": customer_id or "none",
            "failover": failover or {},
            "product": {
                "version": VERSION,
                "locale": locale.getlocale()[0] or "en_US",
                "installDate": datetime.now(timezone.utc).isoformat(),
                "installationId": "",
                "environment": environment or "none",
                "region": region,
            },
            "featureFlags": {
                "ipFailover": ip_failover,
                "routeFailover": route_failover,
            },
            "operation": {
                "clientRequestId": str(uuid.uuid4()),
                "action": action,
                "endpoint": endpoint,
                "userAgent": user_agent or f"{NAME}/{VERSION}",
                "result": result,
                "resultSummary": result_summary,
            },
        }

    async def send(self, data: dict[str, Any]) -> dict[str, bool]:
        """Submit a record; never raises."""
        if not self.enabled:
            logger.debug("Telemetry disabled, not sending")
            return {"sent": False}

        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as session:
                async with session.post(self.endpoint, json=data) as response:
                    response.raise_for_status()
        except Exception as e:
            logger.error("Sending telemetry failed", error=format_error(e))
            return {"sent": False}

        logger.debug("Telemetry submitted", operation=data.get("operation"))
        return {"sent": True}
