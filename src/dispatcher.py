"""
Multi-Entity Dispatcher - Runs an action over many services or providers.

Expands an operation over every entity of a kind (or an explicit subset),
invokes the router once per entity with bounded parallelism, and merges
the results into one map keyed by entity name. Keys follow project order,
so completion order never changes the result.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from errors import PartialFailureError, SchemaViolationError
from schemas import (
    DELETE_ENVIRONMENT_RESULT_SCHEMA,
    ENVIRONMENT_STATUS_MAP_SCHEMA,
    SERVICE_STATUS_MAP_SCHEMA,
    EnvironmentStatus,
    ServiceStatus,
)
from validation import validate_against_schema

logger = logging.getLogger(__name__)


class MultiEntityDispatcher:
    """
    Fans lifecycle actions out over services and providers.

    Every entity is attempted. If any of them fails, a
    :class:`PartialFailureError` is raised after all invocations finished,
    carrying the statuses of the entities that succeeded and the error of
    each entity that did not.

    Args:
        garden: The Garden to dispatch against
    """

    def __init__(self, garden: Any):
        self.garden = garden
        self.router = garden.get_action_router()
        self.max_concurrent_actions = garden.config.router.max_concurrent_actions

    async def _fan_out(
        self,
        action_name: str,
        calls: Dict[str, Callable[[], Awaitable[Any]]],
    ) -> Dict[str, Any]:
        semaphore = asyncio.Semaphore(self.max_concurrent_actions)

        async def run(call: Callable[[], Awaitable[Any]]) -> Any:
            async with semaphore:
                return await call()

        names = list(calls.keys())
        outcomes = await asyncio.gather(
            *(run(calls[name]) for name in names), return_exceptions=True
        )

        results: Dict[str, Any] = {}
        errors: Dict[str, BaseException] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, Exception):
                logger.error(f"{action_name} failed for {name}: {outcome}")
                errors[name] = outcome
            elif isinstance(outcome, BaseException):
                # Cancellation and interpreter exits are not entity failures
                raise outcome
            else:
                results[name] = outcome

        if errors:
            raise PartialFailureError(action_name, results, errors)
        return results

    @staticmethod
    def _validate(result: Any, schema: Dict[str, Any], operation: str) -> None:
        is_valid, error = validate_against_schema(result, schema)
        if not is_valid:
            raise SchemaViolationError(
                f"Result of {operation} does not match its schema: {error}",
                detail={"action": operation, "errors": error},
            )

    # Services

    async def delete_services(
        self, names: Optional[List[str]] = None
    ) -> Dict[str, ServiceStatus]:
        """
        Delete services and collect their resulting statuses.

        Args:
            names: Services to delete; None or empty deletes every service

        Returns:
            Mapping of service name to its validated status

        Raises:
            UnknownServiceError: If a named service does not exist. No
                handler runs in that case.
            PartialFailureError: If deleting any of the services failed
        """
        services = self.garden.get_services(names)
        logger.info(
            f"Deleting {len(services)} service(s): "
            f"{', '.join(s.name for s in services) or 'none'}"
        )

        results = await self._fan_out(
            "deleteService",
            {s.name: (lambda s=s: self.router.delete_service(s)) for s in services},
        )
        self._validate(results, SERVICE_STATUS_MAP_SCHEMA, "deleteServices")
        return results

    async def get_service_statuses(
        self, names: Optional[List[str]] = None
    ) -> Dict[str, ServiceStatus]:
        """
        Get the status of services.

        Args:
            names: Services to query; None or empty queries every service

        Returns:
            Mapping of service name to its validated status
        """
        services = self.garden.get_services(names)
        results = await self._fan_out(
            "getServiceStatus",
            {s.name: (lambda s=s: self.router.get_service_status(s)) for s in services},
        )
        self._validate(results, SERVICE_STATUS_MAP_SCHEMA, "getServiceStatuses")
        return results

    # Providers

    async def get_environment_statuses(self) -> Dict[str, EnvironmentStatus]:
        """Get the environment status of every active provider."""
        results = await self._fan_out(
            "getEnvironmentStatus",
            {
                p: (lambda p=p: self.router.get_environment_status(p))
                for p in self.garden.providers
            },
        )
        self._validate(results, ENVIRONMENT_STATUS_MAP_SCHEMA, "getEnvironmentStatuses")
        return results

    async def cleanup_all(self) -> Dict[str, EnvironmentStatus]:
        """
        Clean up the environment for every active provider.

        Returns:
            Mapping of provider name to its status after cleanup
        """
        results = await self._fan_out(
            "cleanupEnvironment",
            {
                p: (lambda p=p: self.router.cleanup_environment(p))
                for p in self.garden.providers
            },
        )
        self._validate(results, ENVIRONMENT_STATUS_MAP_SCHEMA, "cleanupEnvironments")
        return results

    async def delete_environment(self) -> Dict[str, Any]:
        """
        Delete every service, then clean up every provider.

        Providers are only cleaned up once all services were deleted.

        Returns:
            ``{"serviceStatuses": {...}, "providerStatuses": {...}}``
        """
        service_statuses = await self.delete_services()
        provider_statuses = await self.cleanup_all()

        result = {
            "serviceStatuses": service_statuses,
            "providerStatuses": provider_statuses,
        }
        self._validate(result, DELETE_ENVIRONMENT_RESULT_SCHEMA, "deleteEnvironment")
        return result
