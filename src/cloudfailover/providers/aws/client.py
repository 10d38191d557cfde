"""Async AWS clients: EC2, S3 and the instance metadata service."""

from __future__ import annotations

import json

from typing import Any

import aiohttp
import aioboto3
import structlog

logger = structlog.get_logger(__name__)

METADATA_URL = "http://169.254.169.254"
METADATA_TOKEN_PATH = "/latest/api/token"
IDENTITY_DOCUMENT_PATH = "/latest/dynamic/instance-identity/document"
METADATA_TOKEN_TTL = "21600"


class InstanceMetadataClient:
    """Reads the instance identity document over IMDSv2."""

    def __init__(self, base_url: str = METADATA_URL, timeout: float = 5.0) -> None:
        self.base_url = base_url
        self.timeout = timeout

    async def get_instance_identity_document(self) -> dict[str, Any]:
        """Return the identity document (region, instanceId, ...)."""
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        ) as session:
            async with session.put(
                f"{self.base_url}{METADATA_TOKEN_PATH}",
                headers={"X-aws-ec2-metadata-token-ttl-seconds": METADATA_TOKEN_TTL},
            ) as response:
                response.raise_for_status()
                token = await response.text()

            async with session.get(
                f"{self.base_url}{IDENTITY_DOCUMENT_PATH}",
                headers={"X-aws-ec2-metadata-token": token},
            ) as response:
                response.raise_for_status()
                # served as text/plain
                return json.loads(await response.text())


class EC2Client:
    """Thin async wrapper around the EC2 calls used for failover.

    Responses are returned as the raw AWS dictionaries.
    """

    def __init__(self, session: aioboto3.Session, region: str) -> None:
        self._session = session
        self._region = region

    async def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        async with self._session.client("ec2", region_name=self._region) as ec2:
            return await getattr(ec2, operation)(**params)

    async def describe_addresses(self, **params: Any) -> dict[str, Any]:
        return await self._call("describe_addresses", **params)

    async def describe_network_interfaces(self, **params: Any) -> dict[str, Any]:
        return await self._call("describe_network_interfaces", **params)

    async def describe_subnets(self, **params: Any) -> dict[str, Any]:
        return await self._call("describe_subnets", **params)

    async def describe_route_tables(self, **params: Any) -> dict[str, Any]:
        return await self._call("describe_route_tables", **params)

    async def associate_address(self, **params: Any) -> dict[str, Any]:
        return await self._call("associate_address", **params)

    async def disassociate_address(self, **params: Any) -> dict[str, Any]:
        return await self._call("disassociate_address", **params)

    async def assign_private_ip_addresses(self, **params: Any) -> dict[str, Any]:
        return await self._call("assign_private_ip_addresses", **params)

    async def unassign_private_ip_addresses(self, **params: Any) -> dict[str, Any]:
        return await self._call("unassign_private_ip_addresses", **params)

    async def assign_ipv6_addresses(self, **params: Any) -> dict[str, Any]:
        return await self._call("assign_ipv6_addresses", **params)

    async def unassign_ipv6_addresses(self, **params: Any) -> dict[str, Any]:
        return await self._call("unassign_ipv6_addresses", **params)

    async def replace_route(self, **params: Any) -> dict[str, Any]:
        return await self._call("replace_route", **params)


class S3Client:
    """Thin async wrapper around the S3 calls used for state storage."""

    def __init__(self, session: aioboto3.Session, region: str) -> None:
        self._session = session
        self._region = region

    async def list_buckets(self) -> list[str]:
        async with self._session.client("s3", region_name=self._region) as s3:
            response = await s3.list_buckets()
        return [bucket["Name"] for bucket in response.get("Buckets", [])]

    async def get_bucket_region(self, bucket: str) -> str:
        async with self._session.client("s3", region_name=self._region) as s3:
            response = await s3.get_bucket_location(Bucket=bucket)
        # us-east-1 buckets report no location constraint
        return response.get("LocationConstraint") or "us-east-1"

    async def get_bucket_tags(self, bucket: str) -> dict[str, str]:
        async with self._session.client("s3", region_name=self._region) as s3:
            response = await s3.get_bucket_tagging(Bucket=bucket)
        return {tag["Key"]: tag["Value"] for tag in response.get("TagSet", [])}

    async def put_json(self, bucket: str, key: str, data: dict[str, Any]) -> None:
        body = json.dumps(data).encode()
        async with self._session.client("s3", region_name=self._region) as s3:
            await s3.put_object(
                Bucket=bucket,
                Key=key,
                Body=body,
                ContentType="application/json",
                ServerSideEncryption="AES256",
            )

    async def list_keys(self, bucket: str, prefix: str) -> list[str]:
        async with self._session.client("s3", region_name=self._region) as s3:
            response = await s3.list_objects_v2(Bucket=bucket, Prefix=prefix)
        return [obj["Key"] for obj in response.get("Contents", [])]

    async def get_json(self, bucket: str, key: str) -> dict[str, Any]:
        async with self._session.client("s3", region_name=self._region) as s3:
            response = await s3.get_object(Bucket=bucket, Key=key)
            body = await response["Body"].read()
        return json.loads(body)
