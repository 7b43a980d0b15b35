"""
Output schemas and default merging for action and command results.

Plugins may return partial results. The router overlays them on the
defaults defined here exactly once, then validates the merged value.
"""

import copy
from typing import Any, Dict, List, Optional, TypedDict

SERVICE_STATES = [
    "ready",
    "missing",
    "unknown",
    "outdated",
    "deploying",
    "stopped",
    "unhealthy",
]


class ServiceStatus(TypedDict, total=False):
    state: str
    detail: Dict[str, Any]
    ingresses: List[Dict[str, Any]]
    forwardablePorts: List[Dict[str, Any]]
    outputs: Dict[str, Any]
    version: str
    runningReplicas: int
    lastMessage: str
    lastError: str
    createdAt: str
    updatedAt: str
    externalId: str
    externalVersion: str


class EnvironmentStatus(TypedDict):
    ready: bool
    outputs: Dict[str, Any]


INGRESS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["hostname", "path", "protocol"],
    "properties": {
        "hostname": {"type": "string"},
        "path": {"type": "string"},
        "protocol": {"type": "string", "enum": ["http", "https"]},
        "port": {"type": "integer", "minimum": 1, "maximum": 65535},
        "linkUrl": {"type": "string"},
    },
    "additionalProperties": False,
}

FORWARDABLE_PORT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["targetPort"],
    "properties": {
        "name": {"type": "string"},
        "protocol": {"type": "string", "enum": ["TCP", "UDP"]},
        "targetPort": {"type": "integer", "minimum": 1, "maximum": 65535},
        "urlProtocol": {"type": "string"},
    },
    "additionalProperties": False,
}

SERVICE_STATUS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["state", "detail", "forwardablePorts", "outputs"],
    "properties": {
        "state": {"type": "string", "enum": SERVICE_STATES},
        "detail": {"type": "object"},
        "ingresses": {"type": "array", "items": INGRESS_SCHEMA},
        "forwardablePorts": {"type": "array", "items": FORWARDABLE_PORT_SCHEMA},
        "outputs": {"type": "object"},
        "version": {"type": "string"},
        "runningReplicas": {"type": "integer", "minimum": 0},
        "lastMessage": {"type": "string"},
        "lastError": {"type": "string"},
        "createdAt": {"type": "string"},
        "updatedAt": {"type": "string"},
        "externalId": {"type": "string"},
        "externalVersion": {"type": "string"},
    },
    "additionalProperties": False,
}

ENVIRONMENT_STATUS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["ready", "outputs"],
    "properties": {
        "ready": {"type": "boolean"},
        "outputs": {"type": "object"},
    },
    "additionalProperties": False,
}

SERVICE_STATUS_MAP_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": SERVICE_STATUS_SCHEMA,
}

ENVIRONMENT_STATUS_MAP_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": ENVIRONMENT_STATUS_SCHEMA,
}

DELETE_ENVIRONMENT_RESULT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["providerStatuses", "serviceStatuses"],
    "properties": {
        "providerStatuses": ENVIRONMENT_STATUS_MAP_SCHEMA,
        "serviceStatuses": SERVICE_STATUS_MAP_SCHEMA,
    },
    "additionalProperties": False,
}

GET_SECRET_RESULT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["value"],
    "properties": {"value": {"type": ["string", "null"]}},
    "additionalProperties": False,
}

SET_SECRET_RESULT_SCHEMA: Dict[str, Any] = {"type": "object"}

DELETE_SECRET_RESULT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["found"],
    "properties": {"found": {"type": "boolean"}},
}

SERVICE_STATUS_DEFAULTS: Dict[str, Any] = {
    "state": "unknown",
    "detail": {},
    "forwardablePorts": [],
    "outputs": {},
}

ENVIRONMENT_STATUS_DEFAULTS: Dict[str, Any] = {
    "ready": True,
    "outputs": {},
}


def merge_defaults(
    partial: Optional[Dict[str, Any]], defaults: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Overlay a partial result on a fresh copy of the defaults.

    Keys the plugin returned win; a key explicitly set to ``None`` is
    treated as omitted. Non-dict results are returned unchanged so that
    schema validation reports them.
    """
    if partial is None:
        partial = {}
    if not isinstance(partial, dict):
        return partial
    merged = copy.deepcopy(defaults)
    merged.update({k: v for k, v in partial.items() if v is not None})
    return merged


def merge_service_status(partial: Optional[Dict[str, Any]]) -> ServiceStatus:
    return merge_defaults(partial, SERVICE_STATUS_DEFAULTS)


def merge_environment_status(
    partial: Optional[Dict[str, Any]],
) -> EnvironmentStatus:
    return merge_defaults(partial, ENVIRONMENT_STATUS_DEFAULTS)


def default_environment_status() -> EnvironmentStatus:
    return merge_environment_status({})


def unknown_service_status() -> ServiceStatus:
    """Status reported for a service whose module type cannot report one."""
    return merge_service_status({})
