"""Pytest configuration and fixtures for cloudfailover tests."""
from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from cloudfailover.config.declaration import Declaration
from cloudfailover.core.retry import RetryPolicy
from cloudfailover.providers.aws import AWSCloud
from cloudfailover.providers.operations import AddressOperationSet, RouteOperationSet
from cloudfailover.topology import (
    FloatingAddress,
    NatAddress,
    SelfAddress,
    TrafficGroup,
)


class FakeTopology:
    """In-memory stand-in for a BIG-IP device."""

    def __init__(
        self,
        hostname: str = "bigip-a.example.com",
        traffic_groups: list[TrafficGroup] | None = None,
        self_addresses: list[SelfAddress] | None = None,
        virtual_addresses: list[FloatingAddress] | None = None,
        snat_addresses: list[FloatingAddress] | None = None,
        nat_addresses: list[NatAddress] | None = None,
    ) -> None:
        self.hostname = hostname
        self.traffic_groups = (
            [TrafficGroup("/Common/traffic-group-1")] if traffic_groups is None else traffic_groups
        )
        self.self_addresses = self_addresses or []
        self.virtual_addresses = virtual_addresses or []
        self.snat_addresses = snat_addresses or []
        self.nat_addresses = nat_addresses or []

    async def get_hostname(self) -> str:
        return self.hostname

    async def get_active_traffic_groups(self) -> list[TrafficGroup]:
        return self.traffic_groups

    async def get_self_addresses(self) -> list[SelfAddress]:
        return self.self_addresses

    async def get_virtual_addresses(self) -> list[FloatingAddress]:
        return self.virtual_addresses

    async def get_snat_addresses(self) -> list[FloatingAddress]:
        return self.snat_addresses

    async def get_nat_addresses(self) -> list[NatAddress]:
        return self.nat_addresses

    async def get_device_info(self) -> list[dict[str, Any]]:
        return [{"name": self.hostname, "selfDevice": "true"}]


class FakeProvider:
    """Cloud provider keeping storage in a dict and recording every call."""

    environment = "aws"
    region = "us-west-2"

    def __init__(
        self,
        addresses: AddressOperationSet | None = None,
        routes: RouteOperationSet | None = None,
    ) -> None:
        self.storage: dict[str, dict[str, Any]] = {}
        self.uploads: list[dict[str, Any]] = []
        self.settings = None
        self.init = AsyncMock(side_effect=self._init)
        self.update_addresses = AsyncMock(
            side_effect=self._update_addresses_result(addresses or AddressOperationSet())
        )
        self.update_routes = AsyncMock(
            side_effect=self._update_routes_result(routes or RouteOperationSet())
        )
        self.get_associated_address_and_route_info = AsyncMock(
            return_value={"instance": "i-local", "addresses": [], "routes": []}
        )

    async def _init(self, settings) -> None:
        self.settings = settings

    @staticmethod
    def _update_addresses_result(discovered: AddressOperationSet):
        async def update_addresses(
            update_operations=None,
            local_addresses=None,
            failover_addresses=None,
            discover_only=False,
        ):
            return discovered if discover_only else None

        return update_addresses

    @staticmethod
    def _update_routes_result(discovered: RouteOperationSet):
        async def update_routes(update_operations=None, local_addresses=None, discover_only=False):
            return discovered if discover_only else None

        return update_routes

    async def discover_addresses(self, local_addresses, failover_addresses):
        return await self.update_addresses(
            local_addresses=local_addresses,
            failover_addresses=failover_addresses,
            discover_only=True,
        )

    async def discover_routes(self, local_addresses):
        return await self.update_routes(local_addresses=local_addresses, discover_only=True)

    async def upload_data_to_storage(self, file_name: str, data: dict[str, Any]) -> None:
        self.uploads.append(data)
        self.storage[file_name] = data

    async def download_data_from_storage(self, file_name: str) -> dict[str, Any]:
        return self.storage.get(file_name, {})


@pytest.fixture
def sample_declaration_data() -> dict[str, Any]:
    """Sample declaration as posted to the REST API."""
    return {
        "class": "Cloud_Failover",
        "environment": "aws",
        "controls": {"logLevel": "info"},
        "externalStorage": {"scopingTags": {"f5_cloud_failover_label": "mydeployment"}},
        "failoverAddresses": {
            "enabled": True,
            "scopingTags": {"f5_cloud_failover_label": "mydeployment"},
        },
        "failoverRoutes": {
            "enabled": True,
            "scopingTags": {"f5_cloud_failover_label": "mydeployment"},
            "scopingAddressRanges": [{"range": "192.0.2.0/24"}],
            "defaultNextHopAddresses": {
                "discoveryType": "static",
                "items": ["10.0.1.10", "10.0.1.11"],
            },
        },
    }


@pytest.fixture
def declaration(sample_declaration_data: dict[str, Any]) -> Declaration:
    return Declaration.model_validate(sample_declaration_data)


@pytest.fixture
def fake_topology() -> FakeTopology:
    return FakeTopology(
        self_addresses=[
            SelfAddress("/Common/self-ext", "10.0.1.10/24", "/Common/traffic-group-local-only"),
            SelfAddress("/Common/self-float", "10.0.1.100/24", "/Common/traffic-group-1"),
        ],
        virtual_addresses=[FloatingAddress("10.0.1.200", "/Common/traffic-group-1", "Common")],
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def mock_ec2() -> AsyncMock:
    """Mock EC2 client; tests set return values per call."""
    mock: AsyncMock = AsyncMock()
    mock.describe_addresses.return_value = {"Addresses": []}
    mock.describe_network_interfaces.return_value = {"NetworkInterfaces": []}
    mock.describe_subnets.return_value = {"Subnets": []}
    mock.describe_route_tables.return_value = {"RouteTables": []}
    return mock


@pytest.fixture
def mock_s3() -> AsyncMock:
    mock: AsyncMock = AsyncMock()
    mock.list_buckets.return_value = []
    mock.list_keys.return_value = []
    return mock


@pytest.fixture
def aws_cloud(mock_ec2: AsyncMock, mock_s3: AsyncMock) -> AWSCloud:
    """AWS provider with mocked clients and a preset identity."""
    cloud = AWSCloud(ec2=mock_ec2, s3=mock_s3)
    cloud.instance_id = "i-local"
    cloud.region = "us-west-2"
    cloud.bucket = "failover-bucket"
    cloud.address_tags = {"f5_cloud_failover_label": "mydeployment"}
    cloud.retry_policy = RetryPolicy(max_retries=2, interval=0)
    return cloud
