"""
Plugin system for Trellis.

This package provides the plugin contract (actions, handler parameters and
plugin declarations) and the registry that resolves handler overrides.
"""

from plugins.base import (
    ACTION_DEFINITIONS,
    ActionDefinition,
    ActionKind,
    GardenPlugin,
    Module,
    ModuleTypeDefinition,
    ModuleTypeExtension,
    PluginContext,
    Service,
)
from plugins.registry import HandlerRegistry, discover_plugins

__all__ = [
    "ACTION_DEFINITIONS",
    "ActionDefinition",
    "ActionKind",
    "GardenPlugin",
    "Module",
    "ModuleTypeDefinition",
    "ModuleTypeExtension",
    "PluginContext",
    "Service",
    "HandlerRegistry",
    "discover_plugins",
]
