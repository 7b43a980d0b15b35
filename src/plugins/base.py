"""
Core plugin types and dataclasses.

This module contains the plugin contract: the table of known actions grouped
by family, the parameter objects handlers receive, and the declarations a
plugin uses to publish provider handlers and module types.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from schemas import (
    DELETE_SECRET_RESULT_SCHEMA,
    ENVIRONMENT_STATUS_SCHEMA,
    GET_SECRET_RESULT_SCHEMA,
    SERVICE_STATUS_SCHEMA,
    SET_SECRET_RESULT_SCHEMA,
    default_environment_status,
    merge_environment_status,
    merge_service_status,
    unknown_service_status,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[Awaitable[Any], Any]]


class ActionKind(Enum):
    """What an action is registered against."""

    PROVIDER = "provider"
    MODULE_TYPE = "module_type"


# Entities


@dataclass
class Service:
    """A deployable unit belonging to a module, addressed by name."""

    name: str
    module_name: str
    spec: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Module:
    """A configured module of a given type, owning its services."""

    name: str
    type: str
    spec: Dict[str, Any] = field(default_factory=dict)
    services: List[Service] = field(default_factory=list)

    def __post_init__(self):
        for service in self.services:
            if service.module_name != self.name:
                raise ValueError(
                    f"Service '{service.name}' belongs to module "
                    f"'{service.module_name}', not '{self.name}'"
                )

    def service_names(self) -> List[str]:
        return [s.name for s in self.services]


@dataclass
class PluginContext:
    """Context passed to every handler about the provider it runs as."""

    plugin_name: str
    environment_name: str
    project_name: str
    provider_config: Dict[str, Any] = field(default_factory=dict)


# Handler parameters


@dataclass
class ActionParams:
    """Parameters common to every handler invocation."""

    ctx: PluginContext
    log: logging.LoggerAdapter


@dataclass
class SetSecretParams(ActionParams):
    key: str
    value: str


@dataclass
class GetSecretParams(ActionParams):
    key: str


@dataclass
class DeleteSecretParams(ActionParams):
    key: str


@dataclass
class GetEnvironmentStatusParams(ActionParams):
    pass


@dataclass
class PrepareEnvironmentParams(ActionParams):
    status: Dict[str, Any]
    force: bool = False


@dataclass
class CleanupEnvironmentParams(ActionParams):
    pass


@dataclass
class ConfigureModuleParams(ActionParams):
    module: Module


@dataclass
class ServiceActionParams(ActionParams):
    module: Module
    service: Service


@dataclass
class GetServiceStatusParams(ServiceActionParams):
    pass


@dataclass
class DeployServiceParams(ServiceActionParams):
    force: bool = False


@dataclass
class DeleteServiceParams(ServiceActionParams):
    pass


# Action definitions


@dataclass(frozen=True)
class ActionDefinition:
    """
    Declaration of a named lifecycle action.

    Attributes:
        name: The action name handlers are registered under
        kind: Whether the action targets a provider or a module type
        family: The action family (secrets, environment, module, service)
        mutating: Whether a missing handler is an error rather than a no-op
        params_class: The parameter dataclass handlers receive
        output_schema: JSON Schema the merged result must satisfy
        merge: Overlays a partial handler result on the required defaults
        default_result: Result of a non-mutating action without a handler
    """

    name: str
    kind: ActionKind
    family: str
    mutating: bool
    params_class: Type[ActionParams]
    output_schema: Optional[Dict[str, Any]] = None
    merge: Optional[Callable[[Any], Any]] = None
    default_result: Optional[Callable[[], Any]] = None


ACTION_DEFINITIONS: Dict[str, ActionDefinition] = {
    d.name: d
    for d in [
        ActionDefinition(
            name="setSecret",
            kind=ActionKind.PROVIDER,
            family="secrets",
            mutating=True,
            params_class=SetSecretParams,
            output_schema=SET_SECRET_RESULT_SCHEMA,
        ),
        ActionDefinition(
            name="getSecret",
            kind=ActionKind.PROVIDER,
            family="secrets",
            mutating=False,
            params_class=GetSecretParams,
            output_schema=GET_SECRET_RESULT_SCHEMA,
            default_result=lambda: {"value": None},
        ),
        ActionDefinition(
            name="deleteSecret",
            kind=ActionKind.PROVIDER,
            family="secrets",
            mutating=True,
            params_class=DeleteSecretParams,
            output_schema=DELETE_SECRET_RESULT_SCHEMA,
        ),
        ActionDefinition(
            name="getEnvironmentStatus",
            kind=ActionKind.PROVIDER,
            family="environment",
            mutating=False,
            params_class=GetEnvironmentStatusParams,
            output_schema=ENVIRONMENT_STATUS_SCHEMA,
            merge=merge_environment_status,
            default_result=default_environment_status,
        ),
        ActionDefinition(
            name="prepareEnvironment",
            kind=ActionKind.PROVIDER,
            family="environment",
            mutating=True,
            params_class=PrepareEnvironmentParams,
        ),
        ActionDefinition(
            name="cleanupEnvironment",
            kind=ActionKind.PROVIDER,
            family="environment",
            mutating=True,
            params_class=CleanupEnvironmentParams,
        ),
        ActionDefinition(
            name="configure",
            kind=ActionKind.MODULE_TYPE,
            family="module",
            mutating=True,
            params_class=ConfigureModuleParams,
        ),
        ActionDefinition(
            name="getServiceStatus",
            kind=ActionKind.MODULE_TYPE,
            family="service",
            mutating=False,
            params_class=GetServiceStatusParams,
            output_schema=SERVICE_STATUS_SCHEMA,
            merge=merge_service_status,
            default_result=unknown_service_status,
        ),
        ActionDefinition(
            name="deployService",
            kind=ActionKind.MODULE_TYPE,
            family="service",
            mutating=True,
            params_class=DeployServiceParams,
            output_schema=SERVICE_STATUS_SCHEMA,
            merge=merge_service_status,
        ),
        ActionDefinition(
            name="deleteService",
            kind=ActionKind.MODULE_TYPE,
            family="service",
            mutating=True,
            params_class=DeleteServiceParams,
            output_schema=SERVICE_STATUS_SCHEMA,
            merge=merge_service_status,
        ),
    ]
}


def get_action_definition(action_name: str) -> ActionDefinition:
    """
    Look up an action by name.

    Raises:
        ValueError: If the action name is not known
    """
    try:
        return ACTION_DEFINITIONS[action_name]
    except KeyError:
        raise ValueError(
            f"Unknown action: {action_name}. "
            f"Known actions: {', '.join(ACTION_DEFINITIONS)}"
        ) from None


def action_names(kind: ActionKind) -> List[str]:
    """List the action names that can be registered for a kind of target."""
    return [d.name for d in ACTION_DEFINITIONS.values() if d.kind == kind]


# Plugin declarations


@dataclass
class ModuleTypeDefinition:
    """A module type created by a plugin."""

    name: str
    handlers: Dict[str, Handler] = field(default_factory=dict)
    schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object"})
    docs: str = ""


@dataclass
class ModuleTypeExtension:
    """Handlers a plugin adds to, or overrides on, an existing module type."""

    name: str
    handlers: Dict[str, Handler] = field(default_factory=dict)


@dataclass
class GardenPlugin:
    """
    A plugin as published by its author.

    Attributes:
        name: Unique plugin name, also the name of the provider it backs
        handlers: Provider-level handlers keyed by action name
        create_module_types: Module types this plugin declares
        extend_module_types: Module types declared elsewhere that this
            plugin overrides handlers for
        dependencies: Plugins that must be loaded before this one
    """

    name: str
    handlers: Dict[str, Handler] = field(default_factory=dict)
    create_module_types: List[ModuleTypeDefinition] = field(default_factory=list)
    extend_module_types: List[ModuleTypeExtension] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    docs: str = ""
