"""
Exception types raised by cloudfailover components.
"""

from __future__ import annotations

from cloudfailover.constants import RECOVERY_OPERATIONS_EMPTY_MESSAGE


class CloudFailoverError(Exception):
    """Base class for all cloudfailover errors."""


class ConfigurationError(CloudFailoverError):
    """Declaration or service configuration is missing or invalid."""


class DiscoveryError(CloudFailoverError):
    """A read-only cloud or device query failed."""


class UpdateError(CloudFailoverError):
    """A mutating cloud call failed."""


class StorageError(CloudFailoverError):
    """Durable storage could not be resolved or accessed."""


class TaskTimeoutError(CloudFailoverError):
    """A prior failover task never reached a terminal state."""


class RecoveryOperationsEmptyError(CloudFailoverError):
    """A failed task left nothing to replay."""

    def __init__(self, message: str = RECOVERY_OPERATIONS_EMPTY_MESSAGE) -> None:
        super().__init__(message)


class RetryExhaustedError(CloudFailoverError):
    """Raised when every attempt of a retried call failed."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Failed after {attempts} attempts: "
            f"{last_error.__class__.__name__}: {last_error}"
        )


def format_error(error: BaseException) -> str:
    """Render an exception the way it is logged and persisted."""
    return f"{error.__class__.__name__}: {error}"
