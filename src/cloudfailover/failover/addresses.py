"""
Failover address candidates

Splits the node's addresses into ``local`` (stay put) and ``failover`` (follow
the active node).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from cloudfailover.network.addressing import normalize_address
from cloudfailover.topology import (
    FloatingAddress,
    NatAddress,
    SelfAddress,
    TrafficGroup,
)


@dataclass
class AddressCandidates:
    local_addresses: list[str] = field(default_factory=list)
    failover_addresses: list[str] = field(default_factory=list)


def traffic_group_matches(traffic_group: str | None, active: list[TrafficGroup]) -> bool:
    """True when an address's traffic group is one the node is active for.

    Names are compared without their partition, so ``traffic-group-1``
    matches ``/Common/traffic-group-1``.
    """
    if not traffic_group:
        return False
    name = traffic_group.rsplit("/", 1)[-1]
    return any(group.name.rsplit("/", 1)[-1] == name for group in active)


def get_failover_addresses(
    self_addresses: list[SelfAddress],
    virtual_addresses: list[FloatingAddress],
    snat_addresses: list[FloatingAddress],
    nat_addresses: list[NatAddress],
    active_traffic_groups: list[TrafficGroup],
) -> AddressCandidates:
    """Classify every address the device knows about.

    Self addresses on an active traffic group fail over, other self addresses
    are local. Virtual, snat-translation and nat-translation addresses always
    fail over, whatever partition they live in.

    Returns:
        Deduplicated local and failover address lists, in discovery order
    """
    local: dict[str, None] = {}
    failover: dict[str, None] = {}

    for item in self_addresses:
        address = normalize_address(item.address)
        if traffic_group_matches(item.traffic_group, active_traffic_groups):
            failover[address] = None
        else:
            local[address] = None

    floating = [item.address for item in virtual_addresses]
    floating.extend(item.address for item in snat_addresses)
    floating.extend(item.translation_address for item in nat_addresses)
    for address in floating:
        failover[normalize_address(address)] = None

    return AddressCandidates(
        local_addresses=list(local),
        failover_addresses=list(failover),
    )
