"""
Address helpers

Normalization and comparison of the address literals reported by the device
and by cloud APIs.
"""

from __future__ import annotations

from ipaddress import ip_address, ip_network

import structlog

from cloudfailover.constants import ROUTE_ADDRESSES_ALL, WILDCARD_ADDRESSES

logger = structlog.get_logger(__name__)


def normalize_wildcard(address: str) -> str:
    """Map the device's any/any6 keywords onto 0.0.0.0/0 and ::/0."""
    return WILDCARD_ADDRESSES.get(address, address)


def normalize_address(address: str) -> str:
    """Strip route domain and prefix length, and canonicalise IPv6.

    ``10.0.0.5%1/24`` becomes ``10.0.0.5``; ``2001:DB8:0::1`` becomes
    ``2001:db8::1``. Unparseable input is returned stripped but otherwise
    untouched.
    """
    address = normalize_wildcard(address.strip())
    if address in WILDCARD_ADDRESSES.values():
        return address

    address = address.split("/")[0].split("%")[0]
    try:
        return ip_address(address).compressed
    except ValueError:
        return address


def ip_version(address: str) -> int:
    """Return 6 for IPv6 literals or CIDRs, else 4."""
    return 6 if ":" in address else 4


def same_network(first: str, second: str) -> bool:
    """True when two CIDR strings describe the same network.

    Raises:
        ValueError: either CIDR is invalid
    """
    return ip_network(first, strict=False) == ip_network(second, strict=False)


def route_in_range(destination: str, route_addresses: list[str]) -> bool:
    """True when a route destination falls inside one of the configured ranges.

    ``all`` matches everything. Otherwise an exact string match counts, as does
    containment when both sides are well-formed networks of the same family.
    A destination with host bits set only matches exactly.
    """
    for route_range in route_addresses:
        route_range = normalize_wildcard(route_range)
        if route_range == ROUTE_ADDRESSES_ALL or route_range == destination:
            return True
        try:
            destination_network = ip_network(destination)
            range_network = ip_network(route_range)
        except ValueError:
            continue
        if (
            destination_network.version == range_network.version
            and destination_network.subnet_of(range_network)
        ):
            return True
    return False
