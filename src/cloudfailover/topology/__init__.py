"""
cloudfailover Topology Module

Read-only access to the local node's hostname, traffic groups and addresses.
"""

from .device import (
    BigIpDevice,
    FloatingAddress,
    NatAddress,
    SelfAddress,
    TopologyProvider,
    TrafficGroup,
)

__all__ = [
    "BigIpDevice",
    "FloatingAddress",
    "NatAddress",
    "SelfAddress",
    "TopologyProvider",
    "TrafficGroup",
]
