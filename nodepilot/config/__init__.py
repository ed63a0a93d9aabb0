"""
Config Package - Black Box Interface

Purpose: Typed configuration for every nodepilot module
Interface: ConfigProvider protocol, EnvConfigProvider, get_config_provider()
Hidden: Environment parsing and defaults

Can be replaced with any provider returning the same dataclasses.
"""

from .provider import (
    APIConfig,
    ConfigProvider,
    DeployConfig,
    EnvConfigProvider,
    SSHConfig,
    StorageConfig,
    TelemetryConfig,
    get_config_provider,
)

__all__ = [
    "APIConfig",
    "ConfigProvider",
    "DeployConfig",
    "EnvConfigProvider",
    "SSHConfig",
    "StorageConfig",
    "TelemetryConfig",
    "get_config_provider",
]
