"""Unit tests for config.py - Configuration management."""

import os
import pytest
from unittest.mock import patch

import config
from config import (
    ProjectConfig,
    RouterConfig,
    PluginConfig,
    Config,
    load_config,
    get_config,
    reset_config,
)


class TestProjectConfig:
    """Tests for ProjectConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = ProjectConfig()
        assert cfg.project_name == "trellis"
        assert cfg.environment_name == "local"
        assert cfg.log_level == "INFO"

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            "TRELLIS_PROJECT_NAME": "shop",
            "TRELLIS_ENVIRONMENT": "staging",
            "TRELLIS_LOG_LEVEL": "DEBUG",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = ProjectConfig.from_env()
            assert cfg.project_name == "shop"
            assert cfg.environment_name == "staging"
            assert cfg.log_level == "DEBUG"

    def test_from_env_defaults(self):
        """Test defaults when no environment variables are set."""
        with patch.dict(os.environ, {}, clear=True):
            cfg = ProjectConfig.from_env()
            assert cfg == ProjectConfig()


class TestRouterConfig:
    """Tests for RouterConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        assert RouterConfig().max_concurrent_actions == 10

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        with patch.dict(os.environ, {"TRELLIS_MAX_CONCURRENT_ACTIONS": "3"}, clear=False):
            cfg = RouterConfig.from_env()
            assert cfg.max_concurrent_actions == 3

    def test_zero_concurrency_rejected(self):
        """A fan-out must be allowed at least one action in flight."""
        with pytest.raises(ValueError):
            RouterConfig(max_concurrent_actions=0)

    def test_from_env_invalid_value(self):
        """Test that a non-integer value raises."""
        with patch.dict(os.environ, {"TRELLIS_MAX_CONCURRENT_ACTIONS": "many"}, clear=False):
            with pytest.raises(ValueError):
                RouterConfig.from_env()


class TestPluginConfig:
    """Tests for PluginConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = PluginConfig()
        assert cfg.enabled_plugins == []
        assert cfg.plugin_configs == {}
        assert cfg.entry_point_group == "trellis.plugins"

    def test_get_plugin_config(self):
        """Test getting config for a specific plugin."""
        cfg = PluginConfig(plugin_configs={"kubernetes": {"context": "kind"}})
        assert cfg.get_plugin_config("kubernetes") == {"context": "kind"}

    def test_get_plugin_config_missing(self):
        """Test getting config for a plugin without config."""
        cfg = PluginConfig()
        assert cfg.get_plugin_config("nonexistent") == {}

    def test_all_plugins_enabled_by_default(self):
        cfg = PluginConfig()
        assert cfg.is_enabled("anything")

    def test_is_enabled_with_list(self):
        cfg = PluginConfig(enabled_plugins=["kubernetes"])
        assert cfg.is_enabled("kubernetes")
        assert not cfg.is_enabled("local")

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            "TRELLIS_ENABLED_PLUGINS": "kubernetes, local,",
            "TRELLIS_PLUGIN_CONFIGS": '{"kubernetes": {"context": "kind"}}',
            "TRELLIS_PLUGIN_GROUP": "acme.plugins",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = PluginConfig.from_env()
            assert cfg.enabled_plugins == ["kubernetes", "local"]
            assert cfg.plugin_configs == {"kubernetes": {"context": "kind"}}
            assert cfg.entry_point_group == "acme.plugins"

    def test_from_env_malformed_plugin_configs(self):
        """Malformed plugin configuration is ignored."""
        with patch.dict(os.environ, {"TRELLIS_PLUGIN_CONFIGS": "{not json"}, clear=True):
            cfg = PluginConfig.from_env()
            assert cfg.plugin_configs == {}


class TestConfig:
    """Tests for main Config class."""

    def test_from_env(self):
        """Test loading all config from environment."""
        with patch.dict(os.environ, {"TRELLIS_ENVIRONMENT": "prod"}, clear=True):
            cfg = Config.from_env()
            assert cfg.project.environment_name == "prod"
            assert isinstance(cfg.router, RouterConfig)
            assert isinstance(cfg.plugins, PluginConfig)

    def test_default(self):
        cfg = Config.default()
        assert cfg.project == ProjectConfig()
        assert cfg.router == RouterConfig()
        assert cfg.plugins == PluginConfig()


class TestConfigSingleton:
    """Tests for load_config / get_config / reset_config."""

    def test_load_config_singleton(self):
        with patch.dict(os.environ, {}, clear=True):
            first = load_config()
            second = load_config()
            assert first is second

    def test_get_config_loads_if_needed(self):
        assert config.config is None
        with patch.dict(os.environ, {}, clear=True):
            cfg = get_config()
        assert cfg is config.config

    def test_reset_config(self):
        with patch.dict(os.environ, {}, clear=True):
            load_config()
        reset_config()
        assert config.config is None
