"""
cloudfailover Failover Module

Failover task state machine, recovery and address candidate computation.
"""

from .addresses import AddressCandidates, get_failover_addresses
from .client import FailoverClient, TaskPolling
from .state import FailoverTaskRecord, TaskState

__all__ = [
    "AddressCandidates",
    "get_failover_addresses",
    "FailoverClient",
    "TaskPolling",
    "FailoverTaskRecord",
    "TaskState",
]
