"""Pytest configuration and fixtures."""

import pytest

from config import reset_config
from garden import Garden
from plugins.base import (
    GardenPlugin,
    Module,
    ModuleTypeDefinition,
    Service,
)


def sample_module_schema():
    """Config schema of the 'test' module type."""
    return {
        "type": "object",
        "properties": {
            "build": {"type": "object"},
            "tasks": {"type": "array", "items": {"type": "string"}},
        },
        "additionalProperties": False,
    }


async def configure_test_module(params):
    return {"moduleConfig": {"name": params.module.name, "spec": params.module.spec}}


async def get_ready_status(params):
    return {"state": "ready", "detail": {}}


def make_test_plugin(name="test-plugin", handlers=None, module_handlers=None):
    """Build a plugin declaring the 'test' module type."""
    module_handlers = {
        "configure": configure_test_module,
        "getServiceStatus": get_ready_status,
        **(module_handlers or {}),
    }
    return GardenPlugin(
        name=name,
        handlers=handlers or {},
        create_module_types=[
            ModuleTypeDefinition(
                name="test",
                docs="Test plugin",
                schema=sample_module_schema(),
                handlers=module_handlers,
            )
        ],
    )


def make_project_modules():
    """Modules of a project with services a, b, c and d."""
    return [
        Module(
            name="module-a",
            type="test",
            services=[Service(name="service-a", module_name="module-a")],
        ),
        Module(
            name="module-b",
            type="test",
            spec={"tasks": ["task-b"]},
            services=[Service(name="service-b", module_name="module-b")],
        ),
        Module(
            name="module-c",
            type="test",
            services=[
                Service(name="service-c", module_name="module-c"),
                Service(name="service-d", module_name="module-c"),
            ],
        ),
    ]


@pytest.fixture(autouse=True)
def clean_config():
    """Make sure no configuration leaks between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def test_plugin():
    return make_test_plugin()


@pytest.fixture
def garden(test_plugin):
    """A garden with the test plugin and services a-d."""
    return Garden(
        plugins=[test_plugin],
        modules=make_project_modules(),
        environment_name="local",
        project_name="test-project-b",
    )


@pytest.fixture
def router(garden):
    return garden.get_action_router()
