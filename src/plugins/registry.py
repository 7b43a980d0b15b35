"""
Handler Registry - Registration and override resolution of plugin handlers.

Plugins are registered in dependency order. Each registration appends the
handler to the candidate list for its (target, action) pair and updates a
flattened table of effective handlers, so resolving a handler at call time
is a single dictionary lookup. When several plugins provide the same action
for the same target, the one registered last wins; overrides apply per
action, never to a whole module type or provider.
"""

from importlib.metadata import entry_points
from typing import Dict, List, Optional, Tuple

from errors import PluginLoadError
from plugins.base import (
    ActionKind,
    GardenPlugin,
    Handler,
    ModuleTypeDefinition,
    action_names,
    get_action_definition,
    logger,
)
from validation import validate_json_schema

HandlerKey = Tuple[str, str]


class HandlerRegistry:
    """
    Central registry for plugin handlers.

    Holds, per provider and per module type, the handlers each plugin
    implements, and resolves the effective handler for an action.
    """

    def __init__(self):
        # Registered plugins by name, and the order they were loaded in
        self._plugins: Dict[str, GardenPlugin] = {}
        self._load_order: List[str] = []

        # Module type declarations and the plugin that created each
        self._module_types: Dict[str, ModuleTypeDefinition] = {}
        self._module_type_owners: Dict[str, str] = {}

        # Every handler registered for (target, action), in registration order
        self._candidates: Dict[HandlerKey, List[Tuple[str, Handler]]] = {}

        # Effective (plugin name, handler) for (target, action)
        self._effective: Dict[HandlerKey, Tuple[str, Handler]] = {}

    # Registration methods

    def register(
        self, plugin_name: str, target_name: str, action_name: str, handler: Handler
    ) -> None:
        """
        Register a handler for an action on a provider or module type.

        Args:
            plugin_name: The plugin supplying the handler
            target_name: Provider name or module type name
            action_name: The action the handler implements
            handler: The handler callable

        Raises:
            PluginLoadError: If the action is unknown, the handler is not
                callable, or the module type has not been declared
        """
        try:
            definition = get_action_definition(action_name)
        except ValueError as e:
            raise PluginLoadError(
                f"Plugin '{plugin_name}' registers {e}",
                detail={"plugin": plugin_name, "target": target_name},
            ) from None

        if not callable(handler):
            raise PluginLoadError(
                f"Handler for '{action_name}' on '{target_name}' from plugin "
                f"'{plugin_name}' is not callable",
                detail={"plugin": plugin_name, "action": action_name},
            )

        if (
            definition.kind == ActionKind.MODULE_TYPE
            and target_name not in self._module_types
        ):
            raise PluginLoadError(
                f"Plugin '{plugin_name}' registers '{action_name}' for "
                f"undeclared module type '{target_name}'",
                detail={"plugin": plugin_name, "moduleType": target_name},
            )

        key = (target_name, action_name)
        candidates = self._candidates.setdefault(key, [])
        if candidates:
            logger.debug(
                f"Plugin '{plugin_name}' overrides '{action_name}' on "
                f"'{target_name}' (previously from '{candidates[-1][0]}')"
            )
        candidates.append((plugin_name, handler))
        self._effective[key] = (plugin_name, handler)

    def register_plugin(self, plugin: GardenPlugin) -> None:
        """
        Register every handler and module type a plugin declares.

        The plugin is validated as a whole before anything is registered,
        so a rejected plugin leaves the registry unchanged.

        Args:
            plugin: The plugin to register

        Raises:
            PluginLoadError: If the plugin conflicts with what is registered
        """
        self._validate_plugin(plugin)

        self._plugins[plugin.name] = plugin
        self._load_order.append(plugin.name)

        for module_type in plugin.create_module_types:
            self._module_types[module_type.name] = module_type
            self._module_type_owners[module_type.name] = plugin.name
            for action_name, handler in module_type.handlers.items():
                self.register(plugin.name, module_type.name, action_name, handler)

        for extension in plugin.extend_module_types:
            for action_name, handler in extension.handlers.items():
                self.register(plugin.name, extension.name, action_name, handler)

        for action_name, handler in plugin.handlers.items():
            self.register(plugin.name, plugin.name, action_name, handler)

        logger.info(
            f"Registered plugin: {plugin.name} "
            f"(provider handlers: {', '.join(plugin.handlers) or 'none'}, "
            f"module types: "
            f"{', '.join(m.name for m in plugin.create_module_types) or 'none'})"
        )

    def load_plugins(self, plugins: List[GardenPlugin]) -> List[str]:
        """
        Register a set of plugins in dependency order.

        A plugin is loaded after its declared dependencies and after the
        plugins that create the module types it extends. Otherwise the
        given order is kept.

        Args:
            plugins: The plugins to register

        Returns:
            The plugin names in the order they were registered

        Raises:
            PluginLoadError: On duplicate names, unknown dependencies or
                dependency cycles
        """
        ordered = self._sort_plugins(plugins)
        for plugin in ordered:
            self.register_plugin(plugin)
        return [p.name for p in ordered]

    def _sort_plugins(self, plugins: List[GardenPlugin]) -> List[GardenPlugin]:
        by_name: Dict[str, GardenPlugin] = {}
        for plugin in plugins:
            if plugin.name in by_name or plugin.name in self._plugins:
                raise PluginLoadError(
                    f"Plugin '{plugin.name}' is declared more than once",
                    detail={"plugin": plugin.name},
                )
            by_name[plugin.name] = plugin

        creators: Dict[str, str] = {}
        for plugin in plugins:
            for module_type in plugin.create_module_types:
                creators.setdefault(module_type.name, plugin.name)

        requires: Dict[str, set] = {}
        for plugin in plugins:
            names = list(plugin.dependencies)
            for extension in plugin.extend_module_types:
                creator = creators.get(extension.name)
                if creator and creator != plugin.name:
                    names.append(creator)
            for dep in names:
                if dep not in by_name and dep not in self._plugins:
                    raise PluginLoadError(
                        f"Plugin '{plugin.name}' depends on unknown plugin '{dep}'",
                        detail={"plugin": plugin.name, "dependency": dep},
                    )
            requires[plugin.name] = {d for d in names if d in by_name}

        ordered: List[GardenPlugin] = []
        loaded: set = set()
        remaining = list(plugins)
        while remaining:
            ready = next(
                (p for p in remaining if requires[p.name] <= loaded),
                None,
            )
            if ready is None:
                cycle = ", ".join(p.name for p in remaining)
                raise PluginLoadError(
                    f"Circular plugin dependencies between: {cycle}",
                    detail={"plugins": [p.name for p in remaining]},
                )
            ordered.append(ready)
            loaded.add(ready.name)
            remaining.remove(ready)

        return ordered

    def _validate_plugin(self, plugin: GardenPlugin) -> None:
        if plugin.name in self._plugins:
            raise PluginLoadError(
                f"Plugin '{plugin.name}' is already registered",
                detail={"plugin": plugin.name},
            )

        provider_actions = action_names(ActionKind.PROVIDER)
        module_actions = action_names(ActionKind.MODULE_TYPE)

        for action_name in plugin.handlers:
            if action_name not in provider_actions:
                raise PluginLoadError(
                    f"Plugin '{plugin.name}' declares unknown provider action "
                    f"'{action_name}'. Provider actions: {', '.join(provider_actions)}",
                    detail={"plugin": plugin.name, "action": action_name},
                )

        created = set()
        for module_type in plugin.create_module_types:
            owner = self._module_type_owners.get(module_type.name)
            if owner is not None or module_type.name in created:
                raise PluginLoadError(
                    f"Module type '{module_type.name}' is already declared by "
                    f"plugin '{owner or plugin.name}'. Use extend_module_types "
                    f"to override its handlers.",
                    detail={"plugin": plugin.name, "moduleType": module_type.name},
                )
            is_valid, error = validate_json_schema(module_type.schema)
            if not is_valid:
                raise PluginLoadError(
                    f"Module type '{module_type.name}' from plugin "
                    f"'{plugin.name}' has an invalid config schema: {error}",
                    detail={"plugin": plugin.name, "moduleType": module_type.name},
                )
            created.add(module_type.name)

        for extension in plugin.extend_module_types:
            if extension.name not in self._module_types and extension.name not in created:
                raise PluginLoadError(
                    f"Plugin '{plugin.name}' extends module type "
                    f"'{extension.name}', which no loaded plugin declares",
                    detail={"plugin": plugin.name, "moduleType": extension.name},
                )

        handler_maps = [m.handlers for m in plugin.create_module_types]
        handler_maps += [e.handlers for e in plugin.extend_module_types]
        for handlers in handler_maps:
            for action_name in handlers:
                if action_name not in module_actions:
                    raise PluginLoadError(
                        f"Plugin '{plugin.name}' declares unknown module type "
                        f"action '{action_name}'. Module type actions: "
                        f"{', '.join(module_actions)}",
                        detail={"plugin": plugin.name, "action": action_name},
                    )

    # Resolution methods

    def resolve(self, target_name: str, action_name: str) -> Optional[Handler]:
        """
        Resolve the effective handler for an action.

        Args:
            target_name: Provider name or module type name
            action_name: The action name

        Returns:
            The handler registered last for this action and target, or None
            if no plugin implements it
        """
        entry = self._effective.get((target_name, action_name))
        return entry[1] if entry else None

    def get_handler_source(self, target_name: str, action_name: str) -> Optional[str]:
        """Get the name of the plugin supplying the effective handler."""
        entry = self._effective.get((target_name, action_name))
        return entry[0] if entry else None

    def get_candidates(self, target_name: str, action_name: str) -> List[str]:
        """List the plugins that registered the action, in override order."""
        return [name for name, _ in self._candidates.get((target_name, action_name), [])]

    # Discovery methods

    def list_plugins(self) -> List[str]:
        """List registered plugin names in load order."""
        return list(self._load_order)

    def has_plugin(self, name: str) -> bool:
        """Check if a plugin is registered."""
        return name in self._plugins

    def get_plugin(self, name: str) -> GardenPlugin:
        """
        Get a registered plugin.

        Raises:
            ValueError: If the plugin name is not registered
        """
        if name not in self._plugins:
            available = ", ".join(self._load_order) or "none"
            raise ValueError(f"Unknown plugin: {name}. Available plugins: {available}")
        return self._plugins[name]

    def list_module_types(self) -> List[str]:
        """List declared module type names."""
        return list(self._module_types.keys())

    def has_module_type(self, name: str) -> bool:
        """Check if a module type is declared."""
        return name in self._module_types

    def get_module_type(self, name: str) -> Optional[ModuleTypeDefinition]:
        """Get a module type declaration, or None if it is not declared."""
        return self._module_types.get(name)

    def get_module_type_owner(self, name: str) -> Optional[str]:
        """Get the name of the plugin that declared a module type."""
        return self._module_type_owners.get(name)


def discover_plugins(group: str = "trellis.plugins") -> List[GardenPlugin]:
    """
    Discover plugins published via Python entry points.

    Each entry point may refer to a GardenPlugin instance or to a callable
    returning one. Entry points that fail to load are logged and skipped.

    Args:
        group: The entry point group to search

    Returns:
        The discovered plugins, in entry point order
    """
    plugins: List[GardenPlugin] = []
    for ep in entry_points(group=group):
        try:
            loaded = ep.load()
            plugin = loaded() if callable(loaded) else loaded
        except Exception as e:
            logger.warning(f"Could not load plugin {ep.name}: {e}")
            continue
        if not isinstance(plugin, GardenPlugin):
            logger.warning(
                f"Entry point {ep.name} does not provide a GardenPlugin, "
                f"got {type(plugin).__name__}"
            )
            continue
        plugins.append(plugin)
        logger.info(f"Discovered plugin: {plugin.name}")
    return plugins
