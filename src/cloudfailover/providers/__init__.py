"""
cloudfailover Providers Module

Cloud provider contract, operation sets and the bundled provider engines.
"""

from .base import CloudProvider
from .factory import get_cloud_provider
from .operations import (
    AddressOperationSet,
    FailoverOperations,
    InterfaceOperations,
    NicAddress,
    NicOperation,
    PublicAddressOperation,
    RouteOperation,
    RouteOperationSet,
)

__all__ = [
    "CloudProvider",
    "get_cloud_provider",
    "AddressOperationSet",
    "FailoverOperations",
    "InterfaceOperations",
    "NicAddress",
    "NicOperation",
    "PublicAddressOperation",
    "RouteOperation",
    "RouteOperationSet",
]
