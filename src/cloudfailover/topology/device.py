"""
Local device topology

Reads the node's hostname, traffic group ownership and address inventory
from the BIG-IP iControl REST API.
"""

from __future__ import annotations

import asyncio

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import aiohttp
import structlog

from cloudfailover.core.errors import DiscoveryError, format_error
from cloudfailover.network.addressing import normalize_wildcard

logger = structlog.get_logger(__name__)

GLOBAL_SETTINGS_PATH = "/mgmt/tm/sys/global-settings"
CM_DEVICE_PATH = "/mgmt/tm/cm/device"
TRAFFIC_GROUP_STATS_PATH = "/mgmt/tm/cm/traffic-group/stats"
SELF_ADDRESSES_PATH = "/mgmt/tm/net/self"
VIRTUAL_ADDRESSES_PATH = "/mgmt/tm/ltm/virtual-address"
SNAT_TRANSLATIONS_PATH = "/mgmt/tm/ltm/snat-translation"
NAT_PATH = "/mgmt/tm/ltm/nat"


@dataclass
class TrafficGroup:
    """A traffic group the local node is active for."""

    name: str


@dataclass
class SelfAddress:
    name: str
    address: str
    traffic_group: str | None = None


@dataclass
class FloatingAddress:
    """A virtual or snat-translation address."""

    address: str
    traffic_group: str | None = None
    partition: str | None = None


@dataclass
class NatAddress:
    originating_address: str
    translation_address: str
    traffic_group: str | None = None
    partition: str | None = None


@runtime_checkable
class TopologyProvider(Protocol):
    """Read-only view of the local node's control plane."""

    async def get_hostname(self) -> str: ...

    async def get_active_traffic_groups(self) -> list[TrafficGroup]: ...

    async def get_self_addresses(self) -> list[SelfAddress]: ...

    async def get_virtual_addresses(self) -> list[FloatingAddress]: ...

    async def get_snat_addresses(self) -> list[FloatingAddress]: ...

    async def get_nat_addresses(self) -> list[NatAddress]: ...

    async def get_device_info(self) -> list[dict[str, Any]]: ...


class BigIpDevice:
    """TopologyProvider backed by iControl REST."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 443,
        username: str = "admin",
        password: str = "admin",
        verify_ssl: bool = False,
        timeout: float = 30.0,
    ) -> None:
        """
        Initialize the device client.

        Args:
            host: Management address
            port: Management port
            username: iControl REST user
            password: iControl REST password
            verify_ssl: Verify the management certificate
            timeout: Request timeout in seconds
        """
        self.base_url = f"https://{host}:{port}"
        self.auth = aiohttp.BasicAuth(username, password)
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self.session: aiohttp.ClientSession | None = None

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None

    async def _get(self, path: str) -> dict[str, Any]:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                auth=self.auth,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                connector=aiohttp.TCPConnector(ssl=self.verify_ssl),
            )
        try:
            async with self.session.get(f"{self.base_url}{path}") as response:
                response.raise_for_status()
                return await response.json()
        except Exception as e:
            logger.error("Device query failed", path=path, error=format_error(e))
            raise DiscoveryError(f"Device query {path} failed: {format_error(e)}") from e

    async def _items(self, path: str) -> list[dict[str, Any]]:
        return (await self._get(path)).get("items", [])

    async def get_hostname(self) -> str:
        settings = await self._get(GLOBAL_SETTINGS_PATH)
        hostname = settings.get("hostname")
        if not hostname:
            raise DiscoveryError("Device global settings carry no hostname")
        return hostname

    async def get_device_info(self) -> list[dict[str, Any]]:
        return await self._items(CM_DEVICE_PATH)

    async def get_active_traffic_groups(self) -> list[TrafficGroup]:
        """Traffic groups whose active device is this one."""
        hostname, devices, stats = await asyncio.gather(
            self.get_hostname(),
            self.get_device_info(),
            self._get(TRAFFIC_GROUP_STATS_PATH),
        )
        device_name = next(
            (d["name"] for d in devices if str(d.get("selfDevice")).lower() == "true"),
            hostname,
        )

        traffic_groups = []
        for entry in stats.get("entries", {}).values():
            fields = entry.get("nestedStats", {}).get("entries", {})
            owner = fields.get("deviceName", {}).get("description", "")
            state = fields.get("failoverState", {}).get("description")
            if device_name in owner and state == "active":
                traffic_groups.append(
                    TrafficGroup(name=fields["trafficGroup"]["description"])
                )
        return traffic_groups

    async def get_self_addresses(self) -> list[SelfAddress]:
        return [
            SelfAddress(
                name=item["name"],
                address=normalize_wildcard(item["address"]),
                traffic_group=item.get("trafficGroup"),
            )
            for item in await self._items(SELF_ADDRESSES_PATH)
        ]

    async def get_virtual_addresses(self) -> list[FloatingAddress]:
        return [
            FloatingAddress(
                address=normalize_wildcard(item["address"]),
                traffic_group=item.get("trafficGroup"),
                partition=item.get("partition"),
            )
            for item in await self._items(VIRTUAL_ADDRESSES_PATH)
        ]

    async def get_snat_addresses(self) -> list[FloatingAddress]:
        return [
            FloatingAddress(
                address=normalize_wildcard(item["address"]),
                traffic_group=item.get("trafficGroup"),
                partition=item.get("partition"),
            )
            for item in await self._items(SNAT_TRANSLATIONS_PATH)
        ]

    async def get_nat_addresses(self) -> list[NatAddress]:
        return [
            NatAddress(
                originating_address=normalize_wildcard(item["originatingAddress"]),
                translation_address=normalize_wildcard(item["translationAddress"]),
                traffic_group=item.get("trafficGroup"),
                partition=item.get("partition"),
            )
            for item in await self._items(NAT_PATH)
        ]
