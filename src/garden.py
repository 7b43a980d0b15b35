"""
Garden - The execution context for one project environment.

Owns the process-scoped state every other component works against: the
handler registry built from the loaded plugins, the resolved modules and
services, the active providers, the secret store and the environment
status cache. It is created once at startup and passed
explicitly to the router, dispatcher and commands.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from config import Config, get_config
from dispatcher import MultiEntityDispatcher
from environment_status import EnvironmentStatusCache
from errors import ConfigurationError, UnknownServiceError
from plugins.base import GardenPlugin, Module, PluginContext, Service
from plugins.registry import HandlerRegistry, discover_plugins
from router import ActionRouter
from secret_store import SecretStore
from validation import validate_against_schema

logger = logging.getLogger(__name__)


class Garden:
    """
    Resolved project environment with its plugins, modules and state.

    Args:
        plugins: The plugins to load, in any order
        modules: The resolved modules of the project
        providers: Names of the active providers (default: every plugin)
        config: Configuration (default: :class:`Config.default`)
        environment_name: Overrides the configured environment name
        project_name: Overrides the configured project name
    """

    def __init__(
        self,
        plugins: List[GardenPlugin],
        modules: Optional[List[Module]] = None,
        providers: Optional[List[str]] = None,
        config: Optional[Config] = None,
        environment_name: Optional[str] = None,
        project_name: Optional[str] = None,
    ):
        self.config = config or Config.default()
        self.environment_name = environment_name or self.config.project.environment_name
        self.project_name = project_name or self.config.project.project_name

        self.registry = HandlerRegistry()
        self.registry.load_plugins(plugins)

        if providers is None:
            providers = self.registry.list_plugins()
        for name in providers:
            if not self.registry.has_plugin(name):
                raise ConfigurationError(
                    f"Unknown provider: {name}. "
                    f"Loaded plugins: {', '.join(self.registry.list_plugins()) or 'none'}",
                    detail={"provider": name},
                )
        self.providers: List[str] = list(providers)

        self._modules: Dict[str, Module] = {}
        self._services: Dict[str, Service] = {}
        for module in modules or []:
            self._add_module(module)

        self.secrets = SecretStore()
        self.environment_statuses = EnvironmentStatusCache()

        self._router: Optional[ActionRouter] = None
        self._dispatcher: Optional[MultiEntityDispatcher] = None

        logger.info(
            f"Initialized project {self.project_name} in environment "
            f"{self.environment_name} with {len(self._modules)} module(s), "
            f"{len(self._services)} service(s) and providers: "
            f"{', '.join(self.providers) or 'none'}"
        )

    @classmethod
    def from_env(
        cls,
        modules: Optional[List[Module]] = None,
        plugins: Optional[List[GardenPlugin]] = None,
    ) -> "Garden":
        """
        Create a Garden from environment configuration.

        Sets up logging and, unless plugins are given explicitly, loads the
        enabled plugins published under the configured entry point group.
        """
        config = get_config()
        logging.basicConfig(
            level=config.project.log_level.upper(),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

        if plugins is None:
            plugins = [
                p
                for p in discover_plugins(config.plugins.entry_point_group)
                if config.plugins.is_enabled(p.name)
            ]

        return cls(plugins=plugins, modules=modules, config=config)

    def _add_module(self, module: Module) -> None:
        if module.name in self._modules:
            raise ConfigurationError(
                f"Module '{module.name}' is declared more than once",
                detail={"module": module.name},
            )

        module_type = self.registry.get_module_type(module.type)
        if module_type is None:
            raise ConfigurationError(
                f"Module '{module.name}' has unknown type '{module.type}'. "
                f"Available types: {', '.join(self.registry.list_module_types()) or 'none'}",
                detail={"module": module.name, "moduleType": module.type},
            )

        is_valid, error = validate_against_schema(module.spec, module_type.schema)
        if not is_valid:
            raise ConfigurationError(
                f"Invalid configuration for module '{module.name}' "
                f"(type {module.type}): {error}",
                detail={"module": module.name, "moduleType": module.type},
            )

        for service in module.services:
            existing = self._services.get(service.name)
            if existing is not None:
                raise ConfigurationError(
                    f"Service '{service.name}' is declared by both module "
                    f"'{existing.module_name}' and module '{module.name}'",
                    detail={"service": service.name},
                )
            self._services[service.name] = service

        self._modules[module.name] = module

    # Project lookups

    def get_modules(self) -> List[Module]:
        """Get all modules in declaration order."""
        return list(self._modules.values())

    def get_module(self, name: str) -> Module:
        """
        Get a module by name.

        Raises:
            ConfigurationError: If no module has that name
        """
        if name not in self._modules:
            raise ConfigurationError(
                f"Could not find module '{name}'", detail={"module": name}
            )
        return self._modules[name]

    def get_service(self, name: str) -> Service:
        """
        Get a service by name.

        Raises:
            UnknownServiceError: If no service has that name
        """
        if name not in self._services:
            raise UnknownServiceError([name], list(self._services))
        return self._services[name]

    def get_services(
        self, names: Optional[Union[List[str], str]] = None
    ) -> List[Service]:
        """
        Get services by name, or every service if no names are given.

        Args:
            names: Service names to look up; None or empty means all. A
                single name may be passed as a string.

        Returns:
            The matching services in declaration order

        Raises:
            UnknownServiceError: Listing every requested name that does not
                exist
        """
        if not names:
            return list(self._services.values())
        if isinstance(names, str):
            names = [names]

        missing = [n for n in dict.fromkeys(names) if n not in self._services]
        if missing:
            raise UnknownServiceError(missing, list(self._services))

        requested = set(names)
        return [s for s in self._services.values() if s.name in requested]

    def list_service_names(self) -> List[str]:
        """List all service names in declaration order."""
        return list(self._services.keys())

    # Provider lookups

    def get_provider_config(self, provider: str) -> Dict[str, Any]:
        """Get the configuration of a provider from the plugin config."""
        return dict(self.config.plugins.get_plugin_config(provider))

    def get_plugin_context(self, plugin_name: str) -> PluginContext:
        """Build the context handlers of a plugin run with."""
        return PluginContext(
            plugin_name=plugin_name,
            environment_name=self.environment_name,
            project_name=self.project_name,
            provider_config=self.get_provider_config(plugin_name),
        )

    def get_action_router(self) -> ActionRouter:
        """Get the action router bound to this garden."""
        if self._router is None:
            self._router = ActionRouter(self)
        return self._router

    def get_dispatcher(self) -> MultiEntityDispatcher:
        """Get the multi-entity dispatcher bound to this garden."""
        if self._dispatcher is None:
            self._dispatcher = MultiEntityDispatcher(self)
        return self._dispatcher
