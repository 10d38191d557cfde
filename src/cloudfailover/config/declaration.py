"""
Failover declaration schema

The declaration is validated once at the API boundary and resolved into
``ProviderSettings``, the typed object handed to a cloud provider's ``init``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cloudfailover.config.logging import resolve_log_level
from cloudfailover.constants import (
    MAX_RETRIES,
    RETRY_INTERVAL,
    ROUTE_ADDRESSES_ALL,
    SUPPORTED_ENVIRONMENTS,
)


class _DeclarationModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class AddressGroupType(str, Enum):
    """Address group topologies."""

    NETWORK_INTERFACE_ADDRESS = "networkInterfaceAddress"
    ELASTIC_IP_ADDRESS = "elasticIpAddress"


class NextHopDiscoveryType(str, Enum):
    """How a route's next hop address is found."""

    STATIC = "static"
    ROUTE_TAG = "routeTag"


class Controls(_DeclarationModel):
    log_level: str = Field(default="info", alias="logLevel", description="Log level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        resolve_log_level(v)
        return v.lower()


class ExternalStorage(_DeclarationModel):
    scoping_tags: dict[str, str] = Field(
        default_factory=dict, alias="scopingTags", description="Tags identifying the storage bucket"
    )
    scoping_name: str | None = Field(
        None, alias="scopingName", description="Explicit storage bucket name"
    )


class AddressGroupDefinition(_DeclarationModel):
    type: AddressGroupType = Field(..., description="Address group topology")
    scoping_address: str = Field(
        ..., alias="scopingAddress", description="Public address this group moves"
    )
    vip_addresses: list[str] = Field(
        default_factory=list, alias="vipAddresses", description="Private addresses on each node"
    )
    network_interfaces: list[str] = Field(
        default_factory=list, alias="networkInterfaces", description="NIC ids to consider"
    )


class FailoverAddresses(_DeclarationModel):
    enabled: bool = Field(default=True, description="Enable address failover")
    scoping_tags: dict[str, str] = Field(
        default_factory=dict, alias="scopingTags", description="Tags identifying cloud addresses"
    )
    address_group_definitions: list[AddressGroupDefinition] = Field(
        default_factory=list, alias="addressGroupDefinitions"
    )


class NextHopAddresses(_DeclarationModel):
    discovery_type: NextHopDiscoveryType = Field(
        default=NextHopDiscoveryType.STATIC, alias="discoveryType"
    )
    items: list[str] = Field(default_factory=list, description="Static next hop addresses")
    tag: str | None = Field(None, description="Route table tag listing next hop addresses")


class ScopingAddressRange(_DeclarationModel):
    range: str = Field(..., description="Route destination CIDR or 'all'")
    next_hop_addresses: NextHopAddresses | None = Field(None, alias="nextHopAddresses")


class RouteGroupDeclaration(_DeclarationModel):
    scoping_name: str | None = Field(None, alias="scopingName")
    scoping_tags: dict[str, str] = Field(default_factory=dict, alias="scopingTags")
    scoping_address_ranges: list[ScopingAddressRange] = Field(
        default_factory=list, alias="scopingAddressRanges"
    )
    default_next_hop_addresses: NextHopAddresses | None = Field(
        None, alias="defaultNextHopAddresses"
    )

    @model_validator(mode="after")
    def validate_scope(self) -> RouteGroupDeclaration:
        if not self.scoping_name and not self.scoping_tags:
            raise ValueError("route group requires scopingName or scopingTags")
        return self


class FailoverRoutes(_DeclarationModel):
    enabled: bool = Field(default=True, description="Enable route failover")
    scoping_tags: dict[str, str] = Field(default_factory=dict, alias="scopingTags")
    scoping_address_ranges: list[ScopingAddressRange] = Field(
        default_factory=list, alias="scopingAddressRanges"
    )
    default_next_hop_addresses: NextHopAddresses | None = Field(
        None, alias="defaultNextHopAddresses"
    )
    route_group_definitions: list[RouteGroupDeclaration] = Field(
        default_factory=list, alias="routeGroupDefinitions"
    )


class RetryFailover(_DeclarationModel):
    enabled: bool = False
    interval: int = Field(default=1, ge=1, description="Minutes between retries")


class Declaration(_DeclarationModel):
    """A failover declaration as accepted by ``POST /declare``."""

    class_: Literal["Cloud_Failover"] = Field(default="Cloud_Failover", alias="class")
    schema_version: str | None = Field(None, alias="schemaVersion")
    environment: str | None = Field(None, description="Cloud environment (aws)")
    controls: Controls = Field(default_factory=Controls)
    external_storage: ExternalStorage = Field(
        default_factory=ExternalStorage, alias="externalStorage"
    )
    failover_addresses: FailoverAddresses = Field(
        default_factory=FailoverAddresses, alias="failoverAddresses"
    )
    failover_routes: FailoverRoutes = Field(
        default_factory=FailoverRoutes, alias="failoverRoutes"
    )
    retry_failover: RetryFailover = Field(
        default_factory=RetryFailover, alias="retryFailover"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str | None) -> str | None:
        if v is not None and v not in SUPPORTED_ENVIRONMENTS:
            raise ValueError(f"environment must be one of {', '.join(SUPPORTED_ENVIRONMENTS)}")
        return v

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# Resolved provider settings


class RouteNextHop(BaseModel):
    type: str
    items: list[str] = Field(default_factory=list)
    tag: str | None = None


class RouteAddressRange(BaseModel):
    route_addresses: list[str]
    route_next_hop_addresses: RouteNextHop


class RouteGroupDefinition(BaseModel):
    route_name: str | None = None
    route_tags: dict[str, str] = Field(default_factory=dict)
    route_address_ranges: list[RouteAddressRange] = Field(default_factory=list)


class ProviderSettings(BaseModel):
    """Everything a cloud provider needs, resolved from a declaration."""

    address_tags: dict[str, str] = Field(default_factory=dict)
    address_group_definitions: list[AddressGroupDefinition] = Field(default_factory=list)
    route_group_definitions: list[RouteGroupDefinition] = Field(default_factory=list)
    storage_name: str | None = None
    storage_tags: dict[str, str] = Field(default_factory=dict)
    max_retries: int = MAX_RETRIES
    retry_interval: float = RETRY_INTERVAL


def _next_hop(next_hops: NextHopAddresses | None) -> RouteNextHop:
    if next_hops is None:
        return RouteNextHop(type=NextHopDiscoveryType.STATIC.value)
    return RouteNextHop(
        type=next_hops.discovery_type.value,
        items=list(next_hops.items),
        tag=next_hops.tag,
    )


def _address_ranges(
    ranges: list[ScopingAddressRange],
    default_next_hops: NextHopAddresses | None,
) -> list[RouteAddressRange]:
    if not ranges:
        return [
            RouteAddressRange(
                route_addresses=[ROUTE_ADDRESSES_ALL],
                route_next_hop_addresses=_next_hop(default_next_hops),
            )
        ]
    return [
        RouteAddressRange(
            route_addresses=[item.range],
            route_next_hop_addresses=_next_hop(item.next_hop_addresses or default_next_hops),
        )
        for item in ranges
    ]


def build_route_group_definitions(routes: FailoverRoutes) -> list[RouteGroupDefinition]:
    """Collapse global and per-group route settings into route group definitions.

    A global ``scopingTags`` block becomes a single definition; explicit
    ``routeGroupDefinitions`` take precedence and map one to one.
    """
    if routes.route_group_definitions:
        return [
            RouteGroupDefinition(
                route_name=group.scoping_name,
                route_tags=dict(group.scoping_tags),
                route_address_ranges=_address_ranges(
                    group.scoping_address_ranges,
                    group.default_next_hop_addresses or routes.default_next_hop_addresses,
                ),
            )
            for group in routes.route_group_definitions
        ]

    if routes.scoping_tags:
        return [
            RouteGroupDefinition(
                route_tags=dict(routes.scoping_tags),
                route_address_ranges=_address_ranges(
                    routes.scoping_address_ranges, routes.default_next_hop_addresses
                ),
            )
        ]

    return []


def resolve_provider_settings(
    declaration: Declaration,
    max_retries: int = MAX_RETRIES,
    retry_interval: float = RETRY_INTERVAL,
) -> ProviderSettings:
    """Resolve a declaration into provider settings.

    Args:
        declaration: Validated declaration
        max_retries: Retries per mutating cloud call
        retry_interval: Seconds between retries

    Returns:
        ProviderSettings for CloudProvider.init
    """
    return ProviderSettings(
        address_tags=dict(declaration.failover_addresses.scoping_tags),
        address_group_definitions=list(declaration.failover_addresses.address_group_definitions),
        route_group_definitions=build_route_group_definitions(declaration.failover_routes),
        storage_name=declaration.external_storage.scoping_name,
        storage_tags=dict(declaration.external_storage.scoping_tags),
        max_retries=max_retries,
        retry_interval=retry_interval,
    )
