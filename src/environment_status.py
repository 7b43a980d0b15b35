"""
Environment Status Cache - Per-provider readiness recorded by cleanup.

An environment a provider has never torn down is presumed healthy. Only
the cleanup path records a status; reads return copies and never mutate
the cache.
"""

import copy
import logging
from typing import Dict, Tuple

from schemas import EnvironmentStatus, default_environment_status

logger = logging.getLogger(__name__)


class EnvironmentStatusCache:
    """Process-scoped environment statuses keyed by provider and environment."""

    def __init__(self):
        self._statuses: Dict[Tuple[str, str], EnvironmentStatus] = {}

    def get_status(self, provider: str, environment_name: str) -> EnvironmentStatus:
        """
        Get the status of an environment for a provider.

        Args:
            provider: The provider name
            environment_name: The environment name

        Returns:
            The recorded status, or ``{"ready": True, "outputs": {}}`` if
            the provider has not cleaned up this environment.
        """
        status = self._statuses.get((provider, environment_name))
        if status is None:
            return default_environment_status()
        return copy.deepcopy(status)

    def record(
        self, provider: str, environment_name: str, status: EnvironmentStatus
    ) -> None:
        """
        Record the status of an environment after cleanup.

        Args:
            provider: The provider name
            environment_name: The environment name
            status: The complete environment status
        """
        self._statuses[(provider, environment_name)] = copy.deepcopy(status)
        logger.debug(
            f"Recorded environment status for {provider}/{environment_name}: "
            f"ready={status['ready']}"
        )

    def has_status(self, provider: str, environment_name: str) -> bool:
        """Check whether cleanup has recorded a status for this pair."""
        return (provider, environment_name) in self._statuses
