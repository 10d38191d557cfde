"""Tests for telemetry reporting."""

from __future__ import annotations

from unittest.mock import MagicMock, Mock

import aiohttp
import pytest

from cloudfailover.constants import VERSION
from cloudfailover.telemetry import TelemetryClient


class TestTelemetryClient:
    """Test telemetry record building and sending."""

    def test_create_telemetry_data(self):
        client = TelemetryClient(endpoint="https://telemetry.example.com")

        data = client.create_telemetry_data(
            environment="aws",
            action="POST",
            endpoint="/cloud-failover/trigger",
            result="SUCCEEDED",
            result_summary="Failover Successful",
            ip_failover=True,
            region="us-west-2",
            failover={"addresses": 2, "routes": 1},
        )

        assert data["product"]["version"] == VERSION
        assert data["product"]["environment"] == "aws"
        assert data["product"]["region"] == "us-west-2"
        assert data["featureFlags"] == {"ipFailover": True, "routeFailover": False}
        assert data["failover"] == {"addresses": 2, "routes": 1}
        assert data["operation"]["result"] == "SUCCEEDED"
        assert data["operation"]["resultSummary"] == "Failover Successful"
        assert data["operation"]["clientRequestId"]
        assert data["customerId"] == "none"

    @pytest.mark.asyncio
    async def test_disabled_without_endpoint(self):
        client = TelemetryClient()

        assert client.enabled is False
        assert await client.send({}) == {"sent": False}

    @pytest.mark.asyncio
    async def test_send_failure_is_swallowed(self, monkeypatch: pytest.MonkeyPatch):
        """Test a collector outage is reported, not raised."""
        monkeypatch.setattr(
            "cloudfailover.telemetry.aiohttp.ClientSession",
            Mock(side_effect=aiohttp.ClientError("down")),
        )
        client = TelemetryClient(endpoint="https://telemetry.example.com")

        assert await client.send({"operation": {}}) == {"sent": False}

    @pytest.mark.asyncio
    async def test_send_posts_json(self, monkeypatch: pytest.MonkeyPatch):
        response = MagicMock()
        response.__aenter__.return_value = response
        response.raise_for_status = Mock()
        session = MagicMock()
        session.__aenter__.return_value = session
        session.post = Mock(return_value=response)
        monkeypatch.setattr(
            "cloudfailover.telemetry.aiohttp.ClientSession", Mock(return_value=session)
        )
        client = TelemetryClient(endpoint="https://telemetry.example.com")

        assert await client.send({"operation": {}}) == {"sent": True}
        session.post.assert_called_once_with(
            "https://telemetry.example.com", json={"operation": {}}
        )
