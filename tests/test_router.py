"""Unit tests for router.py - Action routing and result normalization."""

import asyncio
import logging

import pytest

from conftest import make_project_modules, make_test_plugin
from errors import (
    NotFoundError,
    PluginError,
    SchemaViolationError,
    UnknownProviderError,
    UnknownServiceError,
    UnsupportedActionError,
)
from garden import Garden
from plugins.base import (
    DeleteServiceParams,
    GardenPlugin,
    ModuleTypeExtension,
    PluginContext,
)


def make_garden(handlers=None, module_handlers=None, extra_plugins=None):
    plugins = [make_test_plugin(handlers=handlers, module_handlers=module_handlers)]
    return Garden(
        plugins=plugins + (extra_plugins or []),
        modules=make_project_modules(),
        environment_name="local",
        project_name="test-project-b",
    )


# ==================== Secrets ====================


@pytest.mark.asyncio
class TestSecretActions:
    """Tests for the secret actions and their built-in handlers."""

    async def test_set_and_get_secret(self, router):
        await router.set_secret("test-plugin", "mykey", "myvalue")
        assert await router.get_secret("test-plugin", "mykey") == {"value": "myvalue"}

    async def test_get_unknown_secret(self, router):
        assert await router.get_secret("test-plugin", "missing") == {"value": None}

    async def test_delete_then_get(self, router):
        await router.set_secret("test-plugin", "mykey", "myvalue")

        assert await router.delete_secret("test-plugin", "mykey") == {"found": True}
        assert await router.get_secret("test-plugin", "mykey") == {"value": None}

    async def test_delete_unknown_secret_is_tagged(self, router):
        with pytest.raises(NotFoundError) as exc_info:
            await router.delete_secret("test-plugin", "missing")

        detail = exc_info.value.detail
        assert detail["action"] == "deleteSecret"
        assert detail["plugin"] == "test-plugin"
        assert detail["key"] == "missing"

    async def test_unknown_provider(self, router):
        with pytest.raises(UnknownProviderError) as exc_info:
            await router.get_secret("nope", "key")
        assert "test-plugin" in str(exc_info.value)

    async def test_plugin_secret_handlers_override_store(self):
        vault = {}

        async def set_secret(params):
            vault[params.key] = params.value.upper()
            return {}

        async def get_secret(params):
            return {"value": vault.get(params.key)}

        garden = make_garden(handlers={"setSecret": set_secret, "getSecret": get_secret})
        router = garden.get_action_router()

        await router.set_secret("test-plugin", "k", "v")

        assert await router.get_secret("test-plugin", "k") == {"value": "V"}
        assert not garden.secrets.has_key("test-plugin", "k")

    async def test_invalid_secret_result(self):
        async def get_secret(params):
            return {"value": 42}

        router = make_garden(handlers={"getSecret": get_secret}).get_action_router()

        with pytest.raises(SchemaViolationError) as exc_info:
            await router.get_secret("test-plugin", "k")
        assert exc_info.value.detail["action"] == "getSecret"

    async def test_set_secret_handler_returning_nothing(self):
        vault = {}

        async def set_secret(params):
            vault[params.key] = params.value

        router = make_garden(handlers={"setSecret": set_secret}).get_action_router()

        assert await router.set_secret("test-plugin", "k", "v") == {}
        assert vault == {"k": "v"}


# ==================== Environment ====================


@pytest.mark.asyncio
class TestEnvironmentActions:
    """Tests for environment status, preparation and cleanup."""

    async def test_default_environment_status(self, router):
        status = await router.get_environment_status("test-plugin")
        assert status == {"ready": True, "outputs": {}}

    async def test_cleanup_marks_not_ready(self, garden, router):
        status = await router.cleanup_environment("test-plugin")

        assert status == {"ready": False, "outputs": {}}
        assert (await router.get_environment_status("test-plugin"))["ready"] is False
        assert garden.environment_statuses.has_status("test-plugin", "local")

    async def test_cleanup_is_idempotent(self):
        calls = []

        async def cleanup(params):
            calls.append(params.ctx.environment_name)
            return {}

        router = make_garden(handlers={"cleanupEnvironment": cleanup}).get_action_router()

        await router.cleanup_environment("test-plugin")
        second = await router.cleanup_environment("test-plugin")

        assert calls == ["local", "local"]
        assert second["ready"] is False
        assert (await router.get_environment_status("test-plugin"))["ready"] is False

    async def test_environment_status_merged_with_defaults(self):
        async def get_status(params):
            return {"ready": False}

        router = make_garden(
            handlers={"getEnvironmentStatus": get_status}
        ).get_action_router()

        assert await router.get_environment_status("test-plugin") == {
            "ready": False,
            "outputs": {},
        }

    async def test_prepare_skipped_when_ready(self):
        calls = []

        async def prepare(params):
            calls.append(params.force)

        router = make_garden(handlers={"prepareEnvironment": prepare}).get_action_router()

        status = await router.prepare_environment("test-plugin")

        assert status == {"ready": True, "outputs": {}}
        assert calls == []

    async def test_prepare_forced(self):
        calls = []

        async def prepare(params):
            calls.append((params.force, params.status))

        router = make_garden(handlers={"prepareEnvironment": prepare}).get_action_router()

        await router.prepare_environment("test-plugin", force=True)

        assert calls == [(True, {"ready": True, "outputs": {}})]


# ==================== Services ====================


@pytest.mark.asyncio
class TestServiceActions:
    """Tests for service actions on module types."""

    async def test_delete_service_merges_defaults(self):
        async def delete_service(params):
            return {"state": "missing", "detail": {}}

        router = make_garden(
            module_handlers={"deleteService": delete_service}
        ).get_action_router()

        assert await router.delete_service("service-a") == {
            "state": "missing",
            "detail": {},
            "forwardablePorts": [],
            "outputs": {},
        }

    async def test_plugin_fields_win_over_defaults(self):
        async def delete_service(params):
            return {
                "state": "stopped",
                "detail": {"reason": "scaled down"},
                "forwardablePorts": [{"targetPort": 8080, "protocol": "TCP"}],
                "outputs": {"url": "http://a.local"},
            }

        router = make_garden(
            module_handlers={"deleteService": delete_service}
        ).get_action_router()

        status = await router.delete_service("service-a")

        assert status["forwardablePorts"] == [{"targetPort": 8080, "protocol": "TCP"}]
        assert status["outputs"] == {"url": "http://a.local"}

    async def test_handler_receives_params(self):
        received = []

        async def delete_service(params):
            received.append(params)
            return {"state": "missing", "detail": {}}

        router = make_garden(
            module_handlers={"deleteService": delete_service}
        ).get_action_router()

        await router.delete_service("service-c")

        params = received[0]
        assert isinstance(params, DeleteServiceParams)
        assert params.service.name == "service-c"
        assert params.module.name == "module-c"
        assert params.ctx == PluginContext(
            plugin_name="test-plugin",
            environment_name="local",
            project_name="test-project-b",
            provider_config={},
        )
        assert isinstance(params.log, logging.LoggerAdapter)
        assert params.log.extra["action"] == "deleteService"

    async def test_sync_handler_accepted(self):
        def delete_service(params):
            return {"state": "missing", "detail": {}}

        router = make_garden(
            module_handlers={"deleteService": delete_service}
        ).get_action_router()

        assert (await router.delete_service("service-a"))["state"] == "missing"

    async def test_delete_without_handler_is_unsupported(self, router):
        with pytest.raises(UnsupportedActionError) as exc_info:
            await router.delete_service("service-a")

        assert exc_info.value.detail["action"] == "deleteService"
        assert "service-a" in str(exc_info.value)

    async def test_deploy_without_handler_is_unsupported(self, router):
        with pytest.raises(UnsupportedActionError):
            await router.deploy_service("service-a")

    async def test_deploy_service(self):
        received = []

        async def deploy_service(params):
            received.append(params.force)
            return {"state": "ready", "detail": {}, "version": "v-1234"}

        router = make_garden(
            module_handlers={"deployService": deploy_service}
        ).get_action_router()

        status = await router.deploy_service("service-a", force=True)

        assert received == [True]
        assert status["version"] == "v-1234"
        assert status["forwardablePorts"] == []

    async def test_status_without_handler_is_unknown(self):
        garden = make_garden()
        garden.registry._effective.pop(("test", "getServiceStatus"))

        status = await garden.get_action_router().get_service_status("service-a")

        assert status == {
            "state": "unknown",
            "detail": {},
            "forwardablePorts": [],
            "outputs": {},
        }

    async def test_get_service_status(self, router):
        assert await router.get_service_status("service-b") == {
            "state": "ready",
            "detail": {},
            "forwardablePorts": [],
            "outputs": {},
        }

    async def test_unknown_service(self, router):
        with pytest.raises(UnknownServiceError):
            await router.get_service_status("nope")

    async def test_plugin_exception_wrapped(self):
        async def delete_service(params):
            raise RuntimeError("cluster unreachable")

        router = make_garden(
            module_handlers={"deleteService": delete_service}
        ).get_action_router()

        with pytest.raises(PluginError) as exc_info:
            await router.delete_service("service-a")

        error = exc_info.value
        assert error.type == "plugin"
        assert error.detail == {
            "action": "deleteService",
            "target": "service service-a",
            "plugin": "test-plugin",
        }
        assert "cluster unreachable" in str(error)
        assert isinstance(error.__cause__, RuntimeError)

    async def test_invalid_state_is_schema_violation(self):
        async def delete_service(params):
            return {"state": "vanished", "detail": {}}

        router = make_garden(
            module_handlers={"deleteService": delete_service}
        ).get_action_router()

        with pytest.raises(SchemaViolationError) as exc_info:
            await router.delete_service("service-a")

        error = exc_info.value
        assert error.detail["plugin"] == "test-plugin"
        assert error.detail["action"] == "deleteService"
        assert "state" in error.detail["errors"]

    async def test_missing_state_defaults_to_unknown(self):
        async def delete_service(params):
            return {"detail": {"reason": "gone"}}

        router = make_garden(
            module_handlers={"deleteService": delete_service}
        ).get_action_router()

        assert await router.delete_service("service-a") == {
            "state": "unknown",
            "detail": {"reason": "gone"},
            "forwardablePorts": [],
            "outputs": {},
        }

    async def test_missing_detail_defaults_to_empty(self):
        async def delete_service(params):
            return {"state": "missing"}

        dispatcher = make_garden(
            module_handlers={"deleteService": delete_service}
        ).get_dispatcher()

        assert await dispatcher.delete_services(["service-a"]) == {
            "service-a": {
                "state": "missing",
                "detail": {},
                "forwardablePorts": [],
                "outputs": {},
            }
        }

    async def test_non_dict_result_is_schema_violation(self):
        async def delete_service(params):
            return "deleted"

        router = make_garden(
            module_handlers={"deleteService": delete_service}
        ).get_action_router()

        with pytest.raises(SchemaViolationError):
            await router.delete_service("service-a")

    async def test_extension_handler_used(self):
        async def extended_delete(params):
            return {"state": "missing", "detail": {"by": "extension"}}

        extension = GardenPlugin(
            name="extension",
            extend_module_types=[
                ModuleTypeExtension(name="test", handlers={"deleteService": extended_delete})
            ],
        )
        router = make_garden(extra_plugins=[extension]).get_action_router()

        status = await router.delete_service("service-a")
        assert status["detail"] == {"by": "extension"}

        # Not overridden, still served by the declaring plugin
        assert (await router.get_service_status("service-a"))["state"] == "ready"

    async def test_configure_module(self, garden, router):
        module = garden.get_module("module-b")
        result = await router.configure_module(module)
        assert result == {"moduleConfig": {"name": "module-b", "spec": {"tasks": ["task-b"]}}}

    async def test_cancellation_propagates(self):
        started = asyncio.Event()

        async def delete_service(params):
            started.set()
            await asyncio.sleep(60)

        router = make_garden(
            module_handlers={"deleteService": delete_service}
        ).get_action_router()

        task = asyncio.create_task(router.delete_service("service-a"))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
