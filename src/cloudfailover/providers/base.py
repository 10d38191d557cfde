"""
Cloud Provider contract

Every cloud implements this interface independently; nothing is inherited.
The orchestrator only ever talks to a provider through these methods.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cloudfailover.config.declaration import ProviderSettings
    from cloudfailover.providers.operations import AddressOperationSet, RouteOperationSet


@runtime_checkable
class CloudProvider(Protocol):
    """Address, route and storage operations against one cloud."""

    environment: str

    async def init(self, settings: ProviderSettings) -> None:
        """Resolve credentials, region and the storage target. Idempotent."""
        ...

    async def discover_addresses(
        self, local_addresses: list[str], failover_addresses: list[str]
    ) -> AddressOperationSet:
        """Compute address operations without touching cloud state."""
        ...

    async def discover_routes(self, local_addresses: list[str]) -> RouteOperationSet:
        """Compute route operations without touching cloud state."""
        ...

    async def update_addresses(
        self,
        update_operations: AddressOperationSet | None = None,
        local_addresses: list[str] | None = None,
        failover_addresses: list[str] | None = None,
        discover_only: bool = False,
    ) -> AddressOperationSet | None:
        """Apply update_operations, or discover (and unless discover_only, apply)."""
        ...

    async def update_routes(
        self,
        update_operations: RouteOperationSet | None = None,
        local_addresses: list[str] | None = None,
        discover_only: bool = False,
    ) -> RouteOperationSet | None:
        """Route counterpart of update_addresses."""
        ...

    async def upload_data_to_storage(self, file_name: str, data: dict[str, Any]) -> None:
        """Persist a JSON document under file_name."""
        ...

    async def download_data_from_storage(self, file_name: str) -> dict[str, Any]:
        """Read a JSON document, or {} when nothing is stored."""
        ...

    async def get_associated_address_and_route_info(self) -> dict[str, Any]:
        """Point-in-time view of addresses and routes bound to this instance."""
        ...
