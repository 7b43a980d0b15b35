"""
Action Router - Resolves, invokes and normalizes plugin handlers.

Every lifecycle action goes through :meth:`ActionRouter.call`, which looks
up the effective handler for the target, builds the typed parameters the
handler receives, invokes it, and turns whatever it returns into a result
that satisfies the action's output schema. Plugin errors are re-raised with
the action, target and plugin attached; they are never retried or masked.
"""

import inspect
import logging
from typing import Any, Dict, Optional, Union

from errors import (
    PluginError,
    SchemaViolationError,
    TrellisError,
    UnknownProviderError,
    UnsupportedActionError,
)
from plugins.base import (
    ActionDefinition,
    ActionKind,
    ActionParams,
    Handler,
    Module,
    Service,
    get_action_definition,
)
from schemas import EnvironmentStatus, ServiceStatus
from validation import validate_against_schema

logger = logging.getLogger(__name__)


class ActionRouter:
    """
    Routes lifecycle actions to the plugin handlers that implement them.

    Provider actions without a plugin handler fall back to built-in
    handlers backed by the garden's secret store and environment status
    cache. Module type actions have no built-in handlers: a missing
    status query yields the action's default result, a missing mutating
    action is an error.

    Args:
        garden: The Garden whose registry, state and project are used
    """

    def __init__(self, garden: Any):
        self.garden = garden
        self._default_handlers: Dict[str, Handler] = {
            "setSecret": self._default_set_secret,
            "getSecret": self._default_get_secret,
            "deleteSecret": self._default_delete_secret,
            "getEnvironmentStatus": self._default_get_environment_status,
            "prepareEnvironment": self._default_noop,
            "cleanupEnvironment": self._default_noop,
        }

    async def call(self, action_name: str, target: str, **params: Any) -> Any:
        """
        Call an action on a provider or module type.

        Args:
            action_name: The action to call
            target: Provider name for provider actions, module type name for
                module type actions
            **params: Action-specific parameters (key, value, module, service)

        Returns:
            The handler result, merged with the action's defaults and
            validated against its output schema

        Raises:
            UnsupportedActionError: If a mutating action has no handler
            PluginError: If the handler raised an unstructured exception
            SchemaViolationError: If the merged result does not validate
        """
        definition = get_action_definition(action_name)
        entity = self._describe_entity(target, params)

        handler = self.garden.registry.resolve(target, action_name)
        plugin_name = self.garden.registry.get_handler_source(target, action_name)

        if handler is None:
            if definition.kind == ActionKind.PROVIDER:
                handler = self._default_handlers.get(action_name)
                plugin_name = target
            else:
                plugin_name = self.garden.registry.get_module_type_owner(target)

        if handler is None:
            if definition.mutating:
                raise UnsupportedActionError(
                    f"No '{action_name}' handler is available for "
                    f"{definition.kind.value.replace('_', ' ')} '{target}' "
                    f"(requested for {entity})",
                    detail={"action": action_name, "target": entity, "plugin": plugin_name},
                )
            logger.debug(
                f"No '{action_name}' handler for '{target}', "
                f"returning default result for {entity}"
            )
            result = definition.default_result() if definition.default_result else None
        else:
            handler_params = definition.params_class(
                ctx=self.garden.get_plugin_context(plugin_name),
                log=self._handler_log(plugin_name, action_name, entity),
                **params,
            )
            result = await self._invoke(
                handler, handler_params, action_name, entity, plugin_name
            )

        return self._normalize(definition, result, entity, plugin_name)

    async def _invoke(
        self,
        handler: Handler,
        params: ActionParams,
        action_name: str,
        entity: str,
        plugin_name: Optional[str],
    ) -> Any:
        logger.debug(f"Calling '{action_name}' handler of {plugin_name} for {entity}")
        try:
            result = handler(params)
            if inspect.isawaitable(result):
                result = await result
        except TrellisError as e:
            e.with_context(action=action_name, target=entity, plugin=plugin_name)
            raise
        except Exception as e:
            logger.debug(
                f"'{action_name}' handler of {plugin_name} failed for {entity}",
                exc_info=True,
            )
            raise PluginError(
                f"Plugin {plugin_name} failed to {action_name} for {entity}: "
                f"{type(e).__name__}: {e}",
                detail={"action": action_name, "target": entity, "plugin": plugin_name},
            ) from e
        return result

    def _normalize(
        self,
        definition: ActionDefinition,
        result: Any,
        entity: str,
        plugin_name: Optional[str],
    ) -> Any:
        # Handlers with nothing to report may return None
        if result is None:
            result = {}
        if definition.merge is not None:
            result = definition.merge(result)

        if definition.output_schema is None:
            return result

        is_valid, error = validate_against_schema(result, definition.output_schema)
        if not is_valid:
            raise SchemaViolationError(
                f"Plugin {plugin_name} returned an invalid result for "
                f"'{definition.name}' on {entity}: {error}",
                detail={
                    "action": definition.name,
                    "target": entity,
                    "plugin": plugin_name,
                    "errors": error,
                },
            )
        return result

    @staticmethod
    def _describe_entity(target: str, params: Dict[str, Any]) -> str:
        service = params.get("service")
        if isinstance(service, Service):
            return f"service {service.name}"
        module = params.get("module")
        if isinstance(module, Module):
            return f"module {module.name}"
        return target

    @staticmethod
    def _handler_log(
        plugin_name: Optional[str], action_name: str, entity: str
    ) -> logging.LoggerAdapter:
        return logging.LoggerAdapter(
            logging.getLogger(f"plugins.{plugin_name}"),
            {"plugin": plugin_name, "action": action_name, "target": entity},
        )

    def _check_provider(self, provider: str) -> None:
        if provider not in self.garden.providers:
            raise UnknownProviderError(provider, self.garden.providers)

    def _resolve_service(self, service: Union[Service, str]) -> Service:
        if isinstance(service, str):
            return self.garden.get_service(service)
        return service

    # Provider actions

    async def set_secret(self, provider: str, key: str, value: str) -> Dict[str, Any]:
        """Create or overwrite a secret for a provider."""
        self._check_provider(provider)
        return await self.call("setSecret", provider, key=key, value=value)

    async def get_secret(self, provider: str, key: str) -> Dict[str, Optional[str]]:
        """
        Read a secret for a provider.

        Returns:
            ``{"value": value}``; value is None for unknown or deleted keys
        """
        self._check_provider(provider)
        return await self.call("getSecret", provider, key=key)

    async def delete_secret(self, provider: str, key: str) -> Dict[str, Any]:
        """
        Delete a secret for a provider.

        Raises:
            NotFoundError: If the key was never set
        """
        self._check_provider(provider)
        return await self.call("deleteSecret", provider, key=key)

    async def get_environment_status(self, provider: str) -> EnvironmentStatus:
        """Get the status of the current environment for a provider."""
        self._check_provider(provider)
        return await self.call("getEnvironmentStatus", provider)

    async def prepare_environment(
        self, provider: str, force: bool = False
    ) -> EnvironmentStatus:
        """
        Prepare the current environment for a provider if it is not ready.

        Args:
            provider: The provider name
            force: Prepare even if the environment reports ready

        Returns:
            The environment status after preparation
        """
        status = await self.get_environment_status(provider)
        if status["ready"] and not force:
            return status

        await self.call("prepareEnvironment", provider, status=status, force=force)
        return await self.get_environment_status(provider)

    async def cleanup_environment(self, provider: str) -> EnvironmentStatus:
        """
        Tear down the current environment for a provider.

        Runs the provider's cleanup handler, then records the environment
        as not ready. Calling it again re-runs the handler.

        Returns:
            ``{"ready": False, "outputs": {}}``
        """
        self._check_provider(provider)
        await self.call("cleanupEnvironment", provider)

        status: EnvironmentStatus = {"ready": False, "outputs": {}}
        self.garden.environment_statuses.record(
            provider, self.garden.environment_name, status
        )
        logger.info(
            f"Cleaned up environment {self.garden.environment_name} for {provider}"
        )
        return {"ready": False, "outputs": {}}

    # Module type actions

    async def configure_module(self, module: Module) -> Dict[str, Any]:
        """Run the configure handler of a module's type."""
        return await self.call("configure", module.type, module=module)

    async def get_service_status(self, service: Union[Service, str]) -> ServiceStatus:
        """
        Get the status of a service.

        Module types that cannot report a status yield ``unknown``.
        """
        service = self._resolve_service(service)
        module = self.garden.get_module(service.module_name)
        return await self.call(
            "getServiceStatus", module.type, module=module, service=service
        )

    async def deploy_service(
        self, service: Union[Service, str], force: bool = False
    ) -> ServiceStatus:
        """Deploy a service and return its resulting status."""
        service = self._resolve_service(service)
        module = self.garden.get_module(service.module_name)
        return await self.call(
            "deployService", module.type, module=module, service=service, force=force
        )

    async def delete_service(self, service: Union[Service, str]) -> ServiceStatus:
        """
        Delete a service and return its resulting status.

        Raises:
            UnsupportedActionError: If the module type cannot delete services
        """
        service = self._resolve_service(service)
        module = self.garden.get_module(service.module_name)
        status = await self.call(
            "deleteService", module.type, module=module, service=service
        )
        logger.info(f"Deleted service {service.name}: {status['state']}")
        return status

    # Built-in provider handlers

    async def _default_set_secret(self, params) -> Dict[str, Any]:
        await self.garden.secrets.set(params.ctx.plugin_name, params.key, params.value)
        return {}

    async def _default_get_secret(self, params) -> Dict[str, Optional[str]]:
        return await self.garden.secrets.get(params.ctx.plugin_name, params.key)

    async def _default_delete_secret(self, params) -> Dict[str, Any]:
        return await self.garden.secrets.delete(params.ctx.plugin_name, params.key)

    async def _default_get_environment_status(self, params) -> EnvironmentStatus:
        return self.garden.environment_statuses.get_status(
            params.ctx.plugin_name, params.ctx.environment_name
        )

    async def _default_noop(self, params) -> Dict[str, Any]:
        return {}
