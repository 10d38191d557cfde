"""
Cloud provider selection
"""

from __future__ import annotations

from typing import Callable

import structlog

from cloudfailover.core.errors import ConfigurationError
from cloudfailover.providers.aws import AWSCloud
from cloudfailover.providers.base import CloudProvider

logger = structlog.get_logger(__name__)

PROVIDERS: dict[str, Callable[[], CloudProvider]] = {
    "aws": AWSCloud,
}


def get_cloud_provider(environment: str | None) -> CloudProvider:
    """Return an uninitialized provider for an environment.

    Args:
        environment: Cloud name from the declaration

    Returns:
        Provider implementing the CloudProvider contract

    Raises:
        ConfigurationError: environment missing or unsupported
    """
    if not environment:
        raise ConfigurationError("Environment not provided")
    provider_class = PROVIDERS.get(environment)
    if provider_class is None:
        logger.error("Unsupported cloud", environment=environment)
        raise ConfigurationError(f"Unsupported cloud: {environment}")
    return provider_class()
