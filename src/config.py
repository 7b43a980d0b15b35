"""
Configuration module for Trellis.

Loads configuration from environment variables.
Supports plugin-based architecture with plugin-specific configuration.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ProjectConfig:
    """Project and environment the orchestration context is bound to."""

    project_name: str = "trellis"
    environment_name: str = "local"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            project_name=os.getenv("TRELLIS_PROJECT_NAME", "trellis"),
            environment_name=os.getenv("TRELLIS_ENVIRONMENT", "local"),
            log_level=os.getenv("TRELLIS_LOG_LEVEL", "INFO"),
        )


@dataclass
class RouterConfig:
    """Action router and dispatcher configuration."""

    # Upper bound on handler invocations in flight during a fan-out
    max_concurrent_actions: int = 10

    def __post_init__(self):
        if self.max_concurrent_actions < 1:
            raise ValueError(
                f"max_concurrent_actions must be at least 1, "
                f"got {self.max_concurrent_actions}"
            )

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            max_concurrent_actions=int(
                os.getenv("TRELLIS_MAX_CONCURRENT_ACTIONS", "10")
            ),
        )


@dataclass
class PluginConfig:
    """Plugin system configuration."""

    # List of enabled plugin names (empty = use all discovered plugins)
    enabled_plugins: List[str] = field(default_factory=list)

    # Provider configuration keyed by plugin name
    plugin_configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    entry_point_group: str = "trellis.plugins"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        enabled_str = os.getenv("TRELLIS_ENABLED_PLUGINS", "")
        enabled = (
            [p.strip() for p in enabled_str.split(",") if p.strip()]
            if enabled_str
            else []
        )

        plugin_configs = {}
        raw_configs = os.getenv("TRELLIS_PLUGIN_CONFIGS")
        if raw_configs:
            try:
                plugin_configs = json.loads(raw_configs)
            except json.JSONDecodeError as e:
                logger.warning(f"Ignoring malformed TRELLIS_PLUGIN_CONFIGS: {e}")

        return cls(
            enabled_plugins=enabled,
            plugin_configs=plugin_configs,
            entry_point_group=os.getenv("TRELLIS_PLUGIN_GROUP", "trellis.plugins"),
        )

    def get_plugin_config(self, plugin_name: str) -> Dict[str, Any]:
        """Get configuration for a specific plugin."""
        return self.plugin_configs.get(plugin_name, {})

    def is_enabled(self, plugin_name: str) -> bool:
        """Check whether a plugin should be loaded."""
        return not self.enabled_plugins or plugin_name in self.enabled_plugins


@dataclass
class Config:
    """Main configuration object."""

    project: ProjectConfig
    router: RouterConfig
    plugins: PluginConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            project=ProjectConfig.from_env(),
            router=RouterConfig.from_env(),
            plugins=PluginConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            project=ProjectConfig(),
            router=RouterConfig(),
            plugins=PluginConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
