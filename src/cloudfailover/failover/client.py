"""
Failover orchestration

Drives one failover attempt: reads topology, decides between fresh discovery
and recovery, records progress in cloud storage and applies the operations
through the cloud provider.
"""

from __future__ import annotations

import asyncio

from dataclasses import dataclass
from typing import Any, Callable

import structlog

from cloudfailover.config.declaration import Declaration, resolve_provider_settings
from cloudfailover.constants import (
    FAILOVER_COMPLETE_MESSAGE,
    MAX_RETRIES,
    MAX_RUNNING_TASK_SECONDS,
    NO_ACTIVE_TRAFFIC_GROUPS_MESSAGE,
    RETRY_INTERVAL,
    STATE_FILE_NAME,
    STATE_FILE_RESET_MESSAGE,
    TASK_POLL_INTERVAL,
    TASK_POLL_MAX_ATTEMPTS,
    TELEMETRY_RESULT_FAILED,
    TELEMETRY_RESULT_SUCCEEDED,
    TELEMETRY_SUMMARY_FAILED,
    TELEMETRY_SUMMARY_SUCCEEDED,
)
from cloudfailover.core.errors import (
    ConfigurationError,
    RecoveryOperationsEmptyError,
    TaskTimeoutError,
    format_error,
)
from cloudfailover.failover.addresses import AddressCandidates, get_failover_addresses
from cloudfailover.failover.state import FailoverTaskRecord, TaskState
from cloudfailover.providers.base import CloudProvider
from cloudfailover.providers.factory import get_cloud_provider
from cloudfailover.providers.operations import FailoverOperations
from cloudfailover.telemetry import TelemetryClient
from cloudfailover.topology import TopologyProvider, TrafficGroup

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TaskPolling:
    """How long to wait for another attempt that is still running."""

    interval: float = TASK_POLL_INTERVAL  # seconds
    max_attempts: int = TASK_POLL_MAX_ATTEMPTS
    stale_after: float = MAX_RUNNING_TASK_SECONDS  # seconds


@dataclass
class _Topology:
    hostname: str
    traffic_groups: list[TrafficGroup]
    candidates: AddressCandidates


class FailoverClient:
    """Runs failover attempts and manages the durable task record."""

    def __init__(
        self,
        declaration: Declaration,
        topology: TopologyProvider,
        telemetry: TelemetryClient | None = None,
        provider: CloudProvider | None = None,
        provider_factory: Callable[[str | None], CloudProvider] = get_cloud_provider,
        polling: TaskPolling | None = None,
        max_retries: int = MAX_RETRIES,
        retry_interval: float = RETRY_INTERVAL,
    ) -> None:
        """
        Initialize the failover client.

        Args:
            declaration: Validated failover declaration
            topology: Source of local hostname, traffic groups and addresses
            telemetry: Telemetry sink, nothing is reported when omitted
            provider: Cloud provider, built from the declaration when omitted
            provider_factory: Builds a provider from an environment name
            polling: Wait budget for attempts already in progress
            max_retries: Retries per mutating cloud call
            retry_interval: Seconds between those retries
        """
        self.declaration = declaration
        self.topology = topology
        self.telemetry = telemetry
        self.provider = provider
        self.provider_factory = provider_factory
        self.polling = polling or TaskPolling()
        self.max_retries = max_retries
        self.retry_interval = retry_interval
        self._initialized = False

    @property
    def addresses_enabled(self) -> bool:
        return self.declaration.failover_addresses.enabled

    @property
    def routes_enabled(self) -> bool:
        return self.declaration.failover_routes.enabled

    async def init(self) -> None:
        """Build and initialize the cloud provider.

        Raises:
            ConfigurationError: no environment, or no engine for it
        """
        if not self.declaration.environment:
            raise ConfigurationError("Environment not provided")
        if self.provider is None:
            self.provider = self.provider_factory(self.declaration.environment)

        await self.provider.init(
            resolve_provider_settings(
                self.declaration,
                max_retries=self.max_retries,
                retry_interval=self.retry_interval,
            )
        )
        self._initialized = True
        logger.info("Cloud provider initialized", environment=self.declaration.environment)

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.init()

    # Public operations

    async def execute(
        self, caller_attributes: dict[str, Any] | None = None
    ) -> FailoverTaskRecord | None:
        """Run one failover attempt.

        Args:
            caller_attributes: ``endpoint`` and ``httpMethod`` of the trigger,
                reported in telemetry

        Returns:
            The record persisted by this attempt, None when failover is disabled

        Raises:
            ConfigurationError: environment missing or unsupported
            RecoveryOperationsEmptyError: the failed attempt left nothing to replay
            TaskTimeoutError: a prior attempt never finished
        """
        await self._ensure_initialized()

        if not self.addresses_enabled and not self.routes_enabled:
            logger.info("Address and route failover are disabled, nothing to do")
            return None

        caller_attributes = caller_attributes or {}
        try:
            record = await self._execute()
        except Exception as e:
            logger.error("Failover failed", error=format_error(e))
            await self._send_telemetry(
                TELEMETRY_RESULT_FAILED, TELEMETRY_SUMMARY_FAILED, caller_attributes
            )
            raise

        await self._send_telemetry(
            TELEMETRY_RESULT_SUCCEEDED,
            TELEMETRY_SUMMARY_SUCCEEDED,
            caller_attributes,
            record.failover_operations,
        )
        return record

    async def dry_run(self) -> FailoverOperations:
        """Discover the operations a failover would apply, without applying them."""
        await self._ensure_initialized()
        topology = await self._get_topology()
        return await self._discover(topology.candidates)

    async def reset_failover_state(self, reset_state_file: bool = False) -> dict[str, str]:
        """Overwrite the task record with an empty PASS record."""
        if not reset_state_file:
            return {"message": "No action performed"}

        await self._ensure_initialized()
        await self.provider.upload_data_to_storage(
            STATE_FILE_NAME,
            FailoverTaskRecord(
                task_state=TaskState.PASS,
                message=STATE_FILE_RESET_MESSAGE,
            ).to_dict(),
        )
        logger.info("Failover state reset")
        return {"message": STATE_FILE_RESET_MESSAGE}

    async def get_task_state_file(self) -> FailoverTaskRecord:
        await self._ensure_initialized()
        return await self._read_record()

    async def get_failover_status_and_objects(self) -> dict[str, Any]:
        """Report HA status alongside the cloud objects mapped to this node."""
        await self._ensure_initialized()
        hostname, traffic_groups, cloud_objects = await asyncio.gather(
            self.topology.get_hostname(),
            self.topology.get_active_traffic_groups(),
            self.provider.get_associated_address_and_route_info(),
        )
        return {
            "hostName": hostname,
            "deviceStatus": "active" if traffic_groups else "standby",
            "trafficGroup": [{"name": group.name} for group in traffic_groups],
            "addresses": cloud_objects.get("addresses", []),
            "routes": cloud_objects.get("routes", []),
        }

    # Attempt internals

    async def _execute(self) -> FailoverTaskRecord:
        topology = await self._get_topology()

        previous, in_progress = await self._wait_for_task(topology.hostname)
        if in_progress:
            logger.info("Failover already in progress on this instance")
            return previous

        recovering = previous.task_state == TaskState.FAIL
        if recovering and previous.failover_operations.is_empty():
            raise RecoveryOperationsEmptyError()

        if not topology.traffic_groups:
            logger.info(NO_ACTIVE_TRAFFIC_GROUPS_MESSAGE, hostname=topology.hostname)
            return await self._write_record(
                TaskState.PASS,
                NO_ACTIVE_TRAFFIC_GROUPS_MESSAGE,
                topology.hostname,
            )

        if recovering:
            logger.info("Recovering previous failover", message=previous.message)
            operations = previous.failover_operations
        else:
            try:
                operations = await self._discover(topology.candidates)
            except Exception as e:
                await self._write_failure(e, topology.hostname)
                raise

        await self._write_record(TaskState.RUN, "Failover running", topology.hostname, operations)

        try:
            await self._update(operations)
        except Exception as e:
            await self._write_failure(e, topology.hostname, operations)
            raise

        logger.info(FAILOVER_COMPLETE_MESSAGE)
        return await self._write_record(
            TaskState.PASS, FAILOVER_COMPLETE_MESSAGE, topology.hostname, operations
        )

    async def _get_topology(self) -> _Topology:
        (
            hostname,
            traffic_groups,
            self_addresses,
            virtual_addresses,
            snat_addresses,
            nat_addresses,
        ) = await asyncio.gather(
            self.topology.get_hostname(),
            self.topology.get_active_traffic_groups(),
            self.topology.get_self_addresses(),
            self.topology.get_virtual_addresses(),
            self.topology.get_snat_addresses(),
            self.topology.get_nat_addresses(),
        )
        candidates = get_failover_addresses(
            self_addresses, virtual_addresses, snat_addresses, nat_addresses, traffic_groups
        )
        logger.info(
            "Resolved failover candidates",
            hostname=hostname,
            traffic_groups=[group.name for group in traffic_groups],
            local_addresses=candidates.local_addresses,
            failover_addresses=candidates.failover_addresses,
        )
        return _Topology(hostname, traffic_groups, candidates)

    async def _discover(self, candidates: AddressCandidates) -> FailoverOperations:
        operations = FailoverOperations()
        if self.addresses_enabled:
            operations.addresses = await self.provider.update_addresses(
                local_addresses=candidates.local_addresses,
                failover_addresses=candidates.failover_addresses,
                discover_only=True,
            )
        if self.routes_enabled:
            operations.routes = await self.provider.update_routes(
                local_addresses=candidates.local_addresses,
                discover_only=True,
            )
        return operations

    async def _update(self, operations: FailoverOperations) -> None:
        if self.addresses_enabled and operations.addresses is not None:
            logger.info("Updating addresses")
            await self.provider.update_addresses(update_operations=operations.addresses)
        if self.routes_enabled and operations.routes is not None:
            logger.info("Updating routes")
            await self.provider.update_routes(update_operations=operations.routes)

    async def _wait_for_task(self, hostname: str) -> tuple[FailoverTaskRecord, bool]:
        """Wait until no other attempt is running.

        Returns:
            The latest record, and whether this instance already has an
            attempt running. A RUN record older than the stale limit is
            returned as FAIL so that its operations are replayed.
        """
        for attempt in range(1, self.polling.max_attempts + 1):
            record = await self._read_record()
            if record.task_state != TaskState.RUN:
                return record, False

            if record.age_seconds() > self.polling.stale_after:
                logger.warning(
                    "Previous failover exceeded its running time, recovering",
                    instance=record.instance,
                    timestamp=record.timestamp.isoformat(),
                )
                return record.model_copy(update={"task_state": TaskState.FAIL}), False

            if record.instance == hostname:
                return record, True

            logger.info(
                "Waiting for running failover",
                instance=record.instance,
                attempt=attempt,
            )
            await asyncio.sleep(self.polling.interval)

        raise TaskTimeoutError(
            f"Failover task still running after {self.polling.max_attempts} checks"
        )

    async def _read_record(self) -> FailoverTaskRecord:
        return FailoverTaskRecord.from_dict(
            await self.provider.download_data_from_storage(STATE_FILE_NAME)
        )

    async def _write_record(
        self,
        task_state: TaskState,
        message: str,
        instance: str,
        operations: FailoverOperations | None = None,
    ) -> FailoverTaskRecord:
        record = FailoverTaskRecord(
            task_state=task_state,
            message=message,
            instance=instance,
            failover_operations=operations or FailoverOperations(),
        )
        await self.provider.upload_data_to_storage(STATE_FILE_NAME, record.to_dict())
        logger.debug("Task state recorded", task_state=task_state.value)
        return record

    async def _write_failure(
        self,
        error: Exception,
        instance: str,
        operations: FailoverOperations | None = None,
    ) -> None:
        try:
            await self._write_record(TaskState.FAIL, format_error(error), instance, operations)
        except Exception as e:
            logger.error("Unable to record failover failure", error=format_error(e))

    async def _send_telemetry(
        self,
        result: str,
        result_summary: str,
        caller_attributes: dict[str, Any],
        operations: FailoverOperations | None = None,
    ) -> None:
        if self.telemetry is None:
            return

        counts = {"addresses": 0, "routes": 0}
        if operations is not None:
            if operations.addresses is not None:
                counts["addresses"] = len(operations.addresses.public_addresses) + len(
                    operations.addresses.interfaces.associate
                )
            if operations.routes is not None:
                counts["routes"] = len(operations.routes.operations)

        data = self.telemetry.create_telemetry_data(
            environment=self.declaration.environment,
            action=caller_attributes.get("httpMethod"),
            endpoint=caller_attributes.get("endpoint"),
            result=result,
            result_summary=result_summary,
            ip_failover=self.addresses_enabled,
            route_failover=self.routes_enabled,
            region=getattr(self.provider, "region", None),
            failover=counts,
        )
        try:
            await self.telemetry.send(data)
        except Exception as e:
            logger.error("Telemetry failed", error=format_error(e))
