"""
Operation sets produced by discovery and consumed by updates.

Field aliases follow the AWS API names (``PrivateIpAddress``,
``AssociationId``, ...) so a persisted snapshot stays readable by any
implementation talking to the same cloud API.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _OperationModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class CurrentAssociation(_OperationModel):
    private_ip_address: str | None = Field(None, alias="PrivateIpAddress")
    association_id: str | None = Field(None, alias="AssociationId")


class TargetAssociation(_OperationModel):
    private_ip_address: str = Field(..., alias="PrivateIpAddress")
    network_interface_id: str = Field(..., alias="NetworkInterfaceId")


class PublicAddressOperation(_OperationModel):
    """Move one Elastic IP from its current private address to a target."""

    current: CurrentAssociation = Field(default_factory=CurrentAssociation)
    target: TargetAssociation
    allocation_id: str = Field(..., alias="AllocationId")


class NicAddress(_OperationModel):
    address: str
    ip_version: int = Field(default=4, alias="ipVersion")
    public_address: str | None = Field(None, alias="publicAddress")


class NicOperation(_OperationModel):
    network_interface_id: str = Field(..., alias="networkInterfaceId")
    addresses: list[NicAddress] = Field(default_factory=list)


class InterfaceOperations(_OperationModel):
    disassociate: list[NicOperation] = Field(default_factory=list)
    associate: list[NicOperation] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.disassociate and not self.associate


class AddressOperationSet(_OperationModel):
    public_addresses: dict[str, PublicAddressOperation] = Field(
        default_factory=dict, alias="publicAddresses"
    )
    interfaces: InterfaceOperations = Field(default_factory=InterfaceOperations)
    load_balancer_addresses: dict[str, Any] = Field(
        default_factory=dict, alias="loadBalancerAddresses"
    )

    def is_empty(self) -> bool:
        return (
            not self.public_addresses
            and self.interfaces.is_empty()
            and not self.load_balancer_addresses
        )


class RouteOperation(_OperationModel):
    route_table_id: str = Field(..., alias="routeTableId")
    network_interface_id: str = Field(..., alias="networkInterfaceId")
    route_address: str = Field(..., alias="routeAddress")
    next_hop_address: str = Field(..., alias="nextHopAddress")
    ip_version: int = Field(default=4, alias="ipVersion")


class RouteOperationSet(_OperationModel):
    operations: list[RouteOperation] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.operations


class FailoverOperations(_OperationModel):
    """Snapshot of the operations an attempt applied or is about to apply."""

    addresses: AddressOperationSet | None = None
    routes: RouteOperationSet | None = None

    def is_empty(self) -> bool:
        return (self.addresses is None or self.addresses.is_empty()) and (
            self.routes is None or self.routes.is_empty()
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FailoverOperations:
        return cls.model_validate(data or {})
