"""
AWS cloud provider

Discovers which Elastic IPs, NIC secondary addresses and route table entries
must move to this instance, and applies those moves.
"""

from __future__ import annotations

import asyncio
import re

from typing import Any

import aioboto3
import structlog

from botocore.exceptions import ClientError

from cloudfailover.config.declaration import (
    AddressGroupDefinition,
    AddressGroupType,
    NextHopDiscoveryType,
    ProviderSettings,
    RouteGroupDefinition,
    RouteNextHop,
)
from cloudfailover.constants import NAME_TAG, NIC_TAG, STORAGE_FOLDER_NAME, VIPS_TAGS
from cloudfailover.core.errors import (
    ConfigurationError,
    DiscoveryError,
    StorageError,
    UpdateError,
    format_error,
)
from cloudfailover.core.retry import RetryPolicy, retrier
from cloudfailover.network.addressing import (
    ip_version,
    normalize_address,
    route_in_range,
    same_network,
)
from cloudfailover.providers.aws.client import EC2Client, InstanceMetadataClient, S3Client
from cloudfailover.providers.operations import (
    AddressOperationSet,
    CurrentAssociation,
    InterfaceOperations,
    NicAddress,
    NicOperation,
    PublicAddressOperation,
    RouteOperation,
    RouteOperationSet,
    TargetAssociation,
)

logger = structlog.get_logger(__name__)

ALREADY_DISASSOCIATED_CODES = {"InvalidAssociationID.NotFound"}


def _tag_filters(tags: dict[str, str]) -> list[dict[str, Any]]:
    return [{"Name": f"tag:{key}", "Values": [value]} for key, value in tags.items()]


def _tag_value(tags: list[dict[str, str]] | None, key: str) -> str | None:
    for tag in tags or []:
        if tag.get("Key") == key:
            return tag.get("Value")
    return None


async def _gather_settled(*calls) -> list[Any]:
    """Await every call, then raise the first failure.

    No call is left in flight when this raises.
    """
    results = await asyncio.gather(*calls, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class AWSCloud:
    """Cloud provider for AWS (EC2 + S3)."""

    environment = "aws"

    def __init__(
        self,
        session: aioboto3.Session | None = None,
        metadata_client: InstanceMetadataClient | None = None,
        ec2: EC2Client | None = None,
        s3: S3Client | None = None,
    ) -> None:
        """
        Initialize the AWS provider.

        Args:
            session: aioboto3 session, defaults to the ambient credential chain
            metadata_client: Instance metadata client
            ec2: Prebuilt EC2 client, created during init when omitted
            s3: Prebuilt S3 client, created during init when omitted
        """
        self._session = session
        self._metadata = metadata_client or InstanceMetadataClient()
        self.ec2 = ec2
        self.s3 = s3

        self.region: str | None = None
        self.instance_id: str | None = None
        self.bucket: str | None = None

        self.address_tags: dict[str, str] = {}
        self.address_group_definitions: list[AddressGroupDefinition] = []
        self.route_group_definitions: list[RouteGroupDefinition] = []
        self.retry_policy = RetryPolicy()

    # Setup and storage

    async def init(self, settings: ProviderSettings) -> None:
        """Read instance identity, build clients and resolve the storage bucket."""
        self.address_tags = dict(settings.address_tags)
        self.address_group_definitions = list(settings.address_group_definitions)
        self.route_group_definitions = list(settings.route_group_definitions)
        self.retry_policy = RetryPolicy(
            max_retries=settings.max_retries, interval=settings.retry_interval
        )

        if self.instance_id is None:
            try:
                document = await self._metadata.get_instance_identity_document()
            except Exception as e:
                raise DiscoveryError(
                    f"Unable to read instance identity document: {format_error(e)}"
                ) from e
            self.region = document["region"]
            self.instance_id = document["instanceId"]

        if self.ec2 is None or self.s3 is None:
            session = self._session or aioboto3.Session()
            self.ec2 = self.ec2 or EC2Client(session, self.region)
            self.s3 = self.s3 or S3Client(session, self.region)

        if settings.storage_name:
            self.bucket = settings.storage_name
        else:
            self.bucket = await self._get_s3_bucket_by_tags(settings.storage_tags)

        logger.info(
            "AWS provider initialized",
            region=self.region,
            instance=self.instance_id,
            bucket=self.bucket,
        )

    async def _get_s3_bucket_by_tags(self, tags: dict[str, str]) -> str:
        buckets = await self._get_regional_s3_buckets()
        bucket_tags = await asyncio.gather(
            *(self._get_bucket_tags(bucket) for bucket in buckets)
        )
        for bucket, found in zip(buckets, bucket_tags):
            if tags and all(found.get(key) == value for key, value in tags.items()):
                return bucket
        raise StorageError("No valid S3 Buckets found!")

    async def _get_regional_s3_buckets(self) -> list[str]:
        buckets = await self.s3.list_buckets()
        regions = await asyncio.gather(
            *(self.s3.get_bucket_region(bucket) for bucket in buckets),
            return_exceptions=True,
        )
        regional = []
        for bucket, region in zip(buckets, regions):
            if isinstance(region, Exception):
                logger.debug("Skipping bucket", bucket=bucket, error=format_error(region))
            elif region == self.region:
                regional.append(bucket)
        return regional

    async def _get_bucket_tags(self, bucket: str) -> dict[str, str]:
        # untagged buckets raise NoSuchTagSet
        try:
            return await self.s3.get_bucket_tags(bucket)
        except ClientError as e:
            logger.debug("No tags for bucket", bucket=bucket, error=format_error(e))
            return {}

    def _storage_key(self, file_name: str) -> str:
        return f"{STORAGE_FOLDER_NAME}/{file_name}"

    async def upload_data_to_storage(self, file_name: str, data: dict[str, Any]) -> None:
        key = self._storage_key(file_name)
        logger.debug("Uploading to storage", bucket=self.bucket, key=key)
        await self.s3.put_json(self.bucket, key, data)

    async def download_data_from_storage(self, file_name: str) -> dict[str, Any]:
        key = self._storage_key(file_name)
        if key not in await self.s3.list_keys(self.bucket, key):
            logger.debug("Nothing stored yet", bucket=self.bucket, key=key)
            return {}
        return await self.s3.get_json(self.bucket, key)

    # EC2 lookups

    async def _get_elastic_ips(
        self,
        tags: dict[str, str] | None = None,
        public_address: str | None = None,
        instance_id: str | None = None,
    ) -> list[dict[str, Any]]:
        filters = _tag_filters(tags or {})
        if public_address:
            filters.append({"Name": "public-ip", "Values": [public_address]})
        if instance_id:
            filters.append({"Name": "instance-id", "Values": [instance_id]})
        response = await self.ec2.describe_addresses(Filters=filters)
        return (response or {}).get("Addresses", [])

    async def _get_private_secondary_ips(self) -> dict[str, dict[str, str]]:
        response = await self.ec2.describe_network_interfaces(
            Filters=[{"Name": "attachment.instance-id", "Values": [self.instance_id]}]
        )
        secondary: dict[str, dict[str, str]] = {}
        for nic in response.get("NetworkInterfaces", []):
            for address in nic.get("PrivateIpAddresses", []):
                if not address.get("Primary"):
                    secondary[address["PrivateIpAddress"]] = {
                        "NetworkInterfaceId": nic["NetworkInterfaceId"]
                    }
        return secondary

    async def _list_nics(
        self,
        tags: dict[str, str] | None = None,
        network_interface_ids: list[str] | None = None,
        address_filter: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {}
        filters = _tag_filters(tags or {})
        if address_filter:
            filters.append(address_filter)
        if filters:
            params["Filters"] = filters
        if network_interface_ids:
            params["NetworkInterfaceIds"] = list(network_interface_ids)
        response = await self.ec2.describe_network_interfaces(**params)
        return response.get("NetworkInterfaces", [])

    async def _get_subnets(self) -> dict[str, str] | None:
        """Map subnet id to IPv4 CIDR, or None when subnets cannot be read."""
        try:
            response = await self.ec2.describe_subnets()
        except Exception as e:
            logger.warning(
                "Unable to describe subnets, NIC pairing will skip the subnet check",
                error=format_error(e),
            )
            return None
        return {
            subnet["SubnetId"]: subnet["CidrBlock"]
            for subnet in response.get("Subnets", [])
            if subnet.get("CidrBlock")
        }

    # Address discovery

    async def discover_addresses(
        self, local_addresses: list[str], failover_addresses: list[str]
    ) -> AddressOperationSet:
        if self.address_group_definitions:
            return await self._discover_address_operations_using_definitions(
                local_addresses, failover_addresses
            )
        return await self._discover_address_operations(local_addresses, failover_addresses)

    async def _discover_address_operations(
        self, local_addresses: list[str], failover_addresses: list[str]
    ) -> AddressOperationSet:
        eips, secondary_ips, nics, subnets = await asyncio.gather(
            self._get_elastic_ips(tags=self.address_tags),
            self._get_private_secondary_ips(),
            self._list_nics(tags=self.address_tags),
            self._get_subnets(),
        )
        operations = AddressOperationSet(
            public_addresses=self._generate_public_address_operations(eips, secondary_ips),
            interfaces=self._generate_address_operations(
                local_addresses, failover_addresses, nics, subnets
            ),
        )
        logger.info(
            "Discovered address operations",
            public_addresses=len(operations.public_addresses),
            nic_moves=len(operations.interfaces.associate),
        )
        return operations

    async def _discover_address_operations_using_definitions(
        self, local_addresses: list[str], failover_addresses: list[str]
    ) -> AddressOperationSet:
        operations = AddressOperationSet()
        claimed: set[str] = set()

        for definition in self.address_group_definitions:
            if definition.type == AddressGroupType.ELASTIC_IP_ADDRESS:
                operation = await self._discover_across_net_operation(definition)
                if operation is not None:
                    operations.public_addresses[definition.scoping_address] = operation
            else:
                interfaces = await self._discover_same_net_operations(
                    definition, local_addresses, failover_addresses, claimed
                )
                operations.interfaces.disassociate.extend(interfaces.disassociate)
                operations.interfaces.associate.extend(interfaces.associate)

        return operations

    async def _discover_same_net_operations(
        self,
        definition: AddressGroupDefinition,
        local_addresses: list[str],
        failover_addresses: list[str],
        claimed: set[str],
    ) -> InterfaceOperations:
        if definition.network_interfaces:
            nics_lookup = self._list_nics(network_interface_ids=definition.network_interfaces)
        else:
            nics_lookup = self._list_nics(tags=self.address_tags)
        nics, subnets = await asyncio.gather(nics_lookup, self._get_subnets())

        # only the group's own address moves, and only while it is failing over
        scoped = normalize_address(definition.scoping_address)
        if scoped in {normalize_address(address) for address in failover_addresses}:
            scoped_addresses = [scoped]
        else:
            scoped_addresses = []
        logger.debug(
            "Same-net address group",
            scoping_address=scoped,
            failing_over=bool(scoped_addresses),
            nics=len(nics),
        )
        return self._generate_address_operations(
            local_addresses, scoped_addresses, nics, subnets, claimed
        )

    async def _discover_across_net_operation(
        self, definition: AddressGroupDefinition
    ) -> PublicAddressOperation | None:
        public_address = definition.scoping_address
        vip_addresses = [normalize_address(vip) for vip in definition.vip_addresses]

        if len(vip_addresses) != 2:
            logger.warning(
                "Address group needs exactly two VIP addresses, skipping",
                public_address=public_address,
                vip_addresses=vip_addresses,
            )
            return None

        eips = await self._get_elastic_ips(public_address=public_address)
        if not eips:
            logger.warning("Elastic IP not found, skipping", public_address=public_address)
            return None

        eip = eips[0]
        current_address = eip.get("PrivateIpAddress")
        if not current_address:
            logger.warning(
                "Elastic IP has no private association, skipping",
                public_address=public_address,
            )
            return None
        if current_address not in vip_addresses:
            logger.warning(
                "Elastic IP is associated outside its VIP addresses, skipping",
                public_address=public_address,
                private_address=current_address,
            )
            return None

        target_address = next(vip for vip in vip_addresses if vip != current_address)
        nics = await self._list_nics(
            tags=self.address_tags,
            address_filter={"Name": "addresses.private-ip-address", "Values": [target_address]},
        )
        if len(nics) != 1:
            logger.warning(
                "Target address does not resolve to exactly one NIC, skipping",
                public_address=public_address,
                target_address=target_address,
                nics=len(nics),
            )
            return None

        nic = nics[0]
        attached_to = (nic.get("Attachment") or {}).get("InstanceId")
        if attached_to and attached_to != self.instance_id:
            logger.info(
                "Elastic IP already points at this instance",
                public_address=public_address,
                private_address=current_address,
            )
            return None

        return PublicAddressOperation(
            current=CurrentAssociation(
                private_ip_address=current_address,
                association_id=eip.get("AssociationId"),
            ),
            target=TargetAssociation(
                private_ip_address=target_address,
                network_interface_id=nic["NetworkInterfaceId"],
            ),
            allocation_id=eip["AllocationId"],
        )

    def _generate_public_address_operations(
        self,
        eips: list[dict[str, Any]],
        secondary_ips: dict[str, dict[str, str]],
    ) -> dict[str, PublicAddressOperation]:
        operations: dict[str, PublicAddressOperation] = {}
        for eip in eips:
            vips = next(
                (
                    tag["Value"]
                    for tag in eip.get("Tags", [])
                    if tag.get("Key") in VIPS_TAGS
                ),
                "",
            )
            for target_address in (vip.strip() for vip in vips.split(",")):
                if not target_address or target_address == eip.get("PrivateIpAddress"):
                    continue
                if target_address not in secondary_ips:
                    continue
                operations[eip["PublicIp"]] = PublicAddressOperation(
                    current=CurrentAssociation(
                        private_ip_address=eip.get("PrivateIpAddress"),
                        association_id=eip.get("AssociationId"),
                    ),
                    target=TargetAssociation(
                        private_ip_address=target_address,
                        network_interface_id=secondary_ips[target_address]["NetworkInterfaceId"],
                    ),
                    allocation_id=eip["AllocationId"],
                )
                break
        return operations

    def _generate_address_operations(
        self,
        local_addresses: list[str],
        failover_addresses: list[str],
        nics: list[dict[str, Any]],
        subnets: dict[str, str] | None,
        claimed: set[str] | None = None,
    ) -> InterfaceOperations:
        """Pair this instance's NICs with peer NICs and move failover addresses across.

        Pairs are scanned in reverse order on both sides. An address is claimed
        at most once, even when several peer NICs carry it.
        """
        operations = InterfaceOperations()
        claimed = set() if claimed is None else claimed
        local = {normalize_address(address) for address in local_addresses}
        failover = {normalize_address(address) for address in failover_addresses}

        mine = [nic for nic in nics if self._is_local_nic(nic, local)]
        theirs = [nic for nic in nics if not self._is_local_nic(nic, local)]

        if subnets is None and mine and theirs:
            logger.warning("Subnets unavailable, pairing NICs without a subnet check")

        for my_nic in reversed(mine):
            for their_nic in reversed(theirs):
                if not self._can_pair(my_nic, their_nic, subnets):
                    continue
                addresses = self._claim_nic_addresses(their_nic, failover, claimed)
                if not addresses:
                    continue
                operations.disassociate.append(
                    NicOperation(
                        network_interface_id=their_nic["NetworkInterfaceId"],
                        addresses=addresses,
                    )
                )
                operations.associate.append(
                    NicOperation(
                        network_interface_id=my_nic["NetworkInterfaceId"],
                        addresses=[address.model_copy() for address in addresses],
                    )
                )
        return operations

    @staticmethod
    def _is_local_nic(nic: dict[str, Any], local: set[str]) -> bool:
        primary = nic.get("PrivateIpAddress")
        return primary is not None and normalize_address(primary) in local

    @staticmethod
    def _can_pair(
        my_nic: dict[str, Any],
        their_nic: dict[str, Any],
        subnets: dict[str, str] | None,
    ) -> bool:
        my_map = _tag_value(my_nic.get("TagSet"), NIC_TAG)
        their_map = _tag_value(their_nic.get("TagSet"), NIC_TAG)
        if my_map is not None and their_map is not None and my_map != their_map:
            return False

        if subnets is None:
            return True
        my_cidr = subnets.get(my_nic.get("SubnetId"))
        their_cidr = subnets.get(their_nic.get("SubnetId"))
        if my_cidr is None or their_cidr is None:
            logger.warning(
                "Subnet unknown, pairing NICs without a subnet check",
                mine=my_nic.get("NetworkInterfaceId"),
                theirs=their_nic.get("NetworkInterfaceId"),
            )
            return True
        return same_network(my_cidr, their_cidr)

    @staticmethod
    def _claim_nic_addresses(
        nic: dict[str, Any], failover: set[str], claimed: set[str]
    ) -> list[NicAddress]:
        candidates: list[tuple[str, bool, str | None]] = [
            (
                entry["PrivateIpAddress"],
                bool(entry.get("Primary")),
                (entry.get("Association") or {}).get("PublicIp"),
            )
            for entry in nic.get("PrivateIpAddresses", [])
        ]
        candidates.extend(
            (entry["Ipv6Address"], False, None) for entry in nic.get("Ipv6Addresses", [])
        )

        addresses = []
        for address, primary, public_address in reversed(candidates):
            address = normalize_address(address)
            if primary or address not in failover or address in claimed:
                continue
            claimed.add(address)
            addresses.append(
                NicAddress(
                    address=address,
                    ip_version=ip_version(address),
                    public_address=public_address,
                )
            )
        return addresses

    # Address updates

    async def update_addresses(
        self,
        update_operations: AddressOperationSet | None = None,
        local_addresses: list[str] | None = None,
        failover_addresses: list[str] | None = None,
        discover_only: bool = False,
    ) -> AddressOperationSet | None:
        if discover_only:
            return await self.discover_addresses(local_addresses or [], failover_addresses or [])
        if update_operations is None:
            update_operations = await self.discover_addresses(
                local_addresses or [], failover_addresses or []
            )
        await self._update_addresses(update_operations)
        return None

    async def _update_addresses(self, operations: AddressOperationSet) -> None:
        if operations.is_empty():
            logger.info("No address operations to perform")
            return

        try:
            await self._reassociate_addresses(operations.interfaces)
            public_addresses = await self._carried_public_address_operations(
                operations.interfaces
            )
            public_addresses.update(operations.public_addresses)
            await self._reassociate_public_addresses(public_addresses)
        except Exception as e:
            raise UpdateError(f"Failed to update addresses: {format_error(e)}") from e
        logger.info("Addresses updated")

    async def _reassociate_public_addresses(
        self, operations: dict[str, PublicAddressOperation]
    ) -> None:
        if not operations:
            return

        logger.info("Reassociating public addresses", public_addresses=list(operations))
        await _gather_settled(
            *(
                retrier(
                    self._disassociate_public_address,
                    operation.current.association_id,
                    policy=self.retry_policy,
                )
                for operation in operations.values()
                if operation.current.association_id
            )
        )
        await _gather_settled(
            *(
                retrier(
                    self._associate_public_address,
                    operation.allocation_id,
                    operation.target.network_interface_id,
                    operation.target.private_ip_address,
                    policy=self.retry_policy,
                )
                for operation in operations.values()
            )
        )

    async def _disassociate_public_address(self, association_id: str) -> None:
        try:
            await self.ec2.disassociate_address(AssociationId=association_id)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ALREADY_DISASSOCIATED_CODES:
                logger.info("Public address already disassociated", association=association_id)
                return
            raise

    async def _associate_public_address(
        self, allocation_id: str, network_interface_id: str, private_address: str
    ) -> None:
        await self.ec2.associate_address(
            AllocationId=allocation_id,
            NetworkInterfaceId=network_interface_id,
            PrivateIpAddress=private_address,
            AllowReassociation=True,
        )

    async def _reassociate_addresses(self, operations: InterfaceOperations) -> None:
        if operations.is_empty():
            return

        logger.info(
            "Moving NIC addresses",
            disassociate=[op.network_interface_id for op in operations.disassociate],
            associate=[op.network_interface_id for op in operations.associate],
        )
        await _gather_settled(
            *(
                retrier(self._disassociate_address_from_nic, operation, policy=self.retry_policy)
                for operation in operations.disassociate
            )
        )
        await _gather_settled(
            *(
                retrier(self._associate_address_to_nic, operation, policy=self.retry_policy)
                for operation in operations.associate
            )
        )

    @staticmethod
    def _split_by_version(operation: NicOperation) -> tuple[list[str], list[str]]:
        ipv4 = [a.address for a in operation.addresses if a.ip_version == 4]
        ipv6 = [a.address for a in operation.addresses if a.ip_version == 6]
        return ipv4, ipv6

    async def _disassociate_address_from_nic(self, operation: NicOperation) -> None:
        ipv4, ipv6 = self._split_by_version(operation)
        if ipv4:
            await self.ec2.unassign_private_ip_addresses(
                NetworkInterfaceId=operation.network_interface_id,
                PrivateIpAddresses=ipv4,
            )
        if ipv6:
            await self.ec2.unassign_ipv6_addresses(
                NetworkInterfaceId=operation.network_interface_id,
                Ipv6Addresses=ipv6,
            )

    async def _associate_address_to_nic(self, operation: NicOperation) -> None:
        ipv4, ipv6 = self._split_by_version(operation)
        if ipv4:
            await self.ec2.assign_private_ip_addresses(
                NetworkInterfaceId=operation.network_interface_id,
                PrivateIpAddresses=ipv4,
            )
        if ipv6:
            await self.ec2.assign_ipv6_addresses(
                NetworkInterfaceId=operation.network_interface_id,
                Ipv6Addresses=ipv6,
            )

    async def _carried_public_address_operations(
        self, operations: InterfaceOperations
    ) -> dict[str, PublicAddressOperation]:
        """Elastic IPs riding on moved private addresses, retargeted at the new NIC."""
        moved = [
            (operation.network_interface_id, address)
            for operation in operations.associate
            for address in operation.addresses
            if address.public_address
        ]
        if not moved:
            return {}

        lookups = await _gather_settled(
            *(
                retrier(
                    self._get_elastic_ips,
                    public_address=address.public_address,
                    policy=self.retry_policy,
                )
                for _, address in moved
            )
        )
        carried: dict[str, PublicAddressOperation] = {}
        for (network_interface_id, address), eips in zip(moved, lookups):
            for eip in eips:
                carried[address.public_address] = PublicAddressOperation(
                    current=CurrentAssociation(
                        private_ip_address=eip.get("PrivateIpAddress"),
                        association_id=eip.get("AssociationId"),
                    ),
                    target=TargetAssociation(
                        private_ip_address=address.address,
                        network_interface_id=network_interface_id,
                    ),
                    allocation_id=eip["AllocationId"],
                )
        return carried

    # Routes

    async def discover_routes(self, local_addresses: list[str]) -> RouteOperationSet:
        local = [normalize_address(address) for address in local_addresses]
        candidates: list[tuple[dict[str, Any], dict[str, Any], str, str]] = []

        for group in self.route_group_definitions:
            for table in await self._get_route_tables(group):
                for address_range in group.route_address_ranges:
                    next_hop = self._discover_next_hop_address(
                        local, table.get("Tags", []), address_range.route_next_hop_addresses
                    )
                    if not next_hop:
                        logger.warning(
                            "No local next hop address for route table",
                            route_table=table["RouteTableId"],
                        )
                        continue
                    for route in table.get("Routes", []):
                        destination = route.get("DestinationCidrBlock") or route.get(
                            "DestinationIpv6CidrBlock"
                        )
                        if destination and route_in_range(
                            destination, address_range.route_addresses
                        ):
                            candidates.append((table, route, destination, next_hop))

        next_hops = list(dict.fromkeys(next_hop for *_, next_hop in candidates))
        nic_ids = dict(
            zip(
                next_hops,
                await asyncio.gather(*(self._get_network_interface_id(a) for a in next_hops)),
            )
        )

        operations = RouteOperationSet()
        for table, route, destination, next_hop in candidates:
            nic_id = nic_ids.get(next_hop)
            if nic_id is None:
                logger.warning("No NIC owns next hop address", next_hop=next_hop)
                continue
            if route.get("NetworkInterfaceId") == nic_id:
                continue
            operations.operations.append(
                RouteOperation(
                    route_table_id=table["RouteTableId"],
                    network_interface_id=nic_id,
                    route_address=destination,
                    next_hop_address=next_hop,
                    ip_version=ip_version(destination),
                )
            )

        logger.info("Discovered route operations", routes=len(operations.operations))
        return operations

    async def _get_route_tables(self, group: RouteGroupDefinition) -> list[dict[str, Any]]:
        params: dict[str, Any] = {}
        if group.route_tags:
            params["Filters"] = _tag_filters(group.route_tags)
        response = await self.ec2.describe_route_tables(**params)
        tables = response.get("RouteTables", [])
        if group.route_name:
            tables = [
                table
                for table in tables
                if group.route_name
                in (table.get("RouteTableId"), _tag_value(table.get("Tags"), NAME_TAG))
            ]
        return tables

    @staticmethod
    def _discover_next_hop_address(
        local_addresses: list[str],
        table_tags: list[dict[str, str]],
        next_hops: RouteNextHop,
    ) -> str | None:
        """Pick the first candidate next hop that is one of this node's addresses."""
        if next_hops.type == NextHopDiscoveryType.STATIC.value:
            items = next_hops.items
        elif next_hops.type == NextHopDiscoveryType.ROUTE_TAG.value:
            value = _tag_value(table_tags, next_hops.tag or "") or ""
            items = [item for item in re.split(r"[,\s]+", value) if item]
        else:
            raise ConfigurationError(f"Invalid discovery type: {next_hops.type}")

        for item in items:
            address = normalize_address(item)
            if address in local_addresses:
                return address
        return None

    async def _get_network_interface_id(self, address: str) -> str | None:
        if ip_version(address) == 6:
            address_filter = {"Name": "ipv6-addresses.ipv6-address", "Values": [address]}
        else:
            address_filter = {"Name": "private-ip-address", "Values": [address]}
        nics = await self._list_nics(tags=self.address_tags, address_filter=address_filter)
        return nics[0]["NetworkInterfaceId"] if nics else None

    async def update_routes(
        self,
        update_operations: RouteOperationSet | None = None,
        local_addresses: list[str] | None = None,
        discover_only: bool = False,
    ) -> RouteOperationSet | None:
        if discover_only:
            return await self.discover_routes(local_addresses or [])
        if update_operations is None:
            update_operations = await self.discover_routes(local_addresses or [])
        await self._update_routes(update_operations)
        return None

    async def _update_routes(self, operations: RouteOperationSet) -> None:
        if operations.is_empty():
            logger.info("No route operations to perform")
            return

        try:
            await _gather_settled(
                *(
                    retrier(self._replace_route, operation, policy=self.retry_policy)
                    for operation in operations.operations
                )
            )
        except Exception as e:
            raise UpdateError(f"Failed to update routes: {format_error(e)}") from e
        logger.info("Routes updated", routes=len(operations.operations))

    async def _replace_route(self, operation: RouteOperation) -> None:
        destination_key = (
            "DestinationIpv6CidrBlock" if operation.ip_version == 6 else "DestinationCidrBlock"
        )
        await self.ec2.replace_route(
            **{
                destination_key: operation.route_address,
                "NetworkInterfaceId": operation.network_interface_id,
                "RouteTableId": operation.route_table_id,
            }
        )

    # Inspection

    async def get_associated_address_and_route_info(self) -> dict[str, Any]:
        eips, tables = await asyncio.gather(
            self._get_elastic_ips(instance_id=self.instance_id),
            self.ec2.describe_route_tables(
                Filters=[{"Name": "route.instance-id", "Values": [self.instance_id]}]
            ),
        )
        return {
            "instance": self.instance_id,
            "addresses": [
                {
                    "publicIpAddress": eip.get("PublicIp"),
                    "privateIpAddress": eip.get("PrivateIpAddress"),
                    "networkInterfaceId": eip.get("NetworkInterfaceId"),
                }
                for eip in eips
            ],
            "routes": [
                {
                    "routeTableId": table["RouteTableId"],
                    "routeTableName": _tag_value(table.get("Tags"), NAME_TAG),
                    "networkId": table.get("VpcId"),
                }
                for table in tables.get("RouteTables", [])
            ],
        }
