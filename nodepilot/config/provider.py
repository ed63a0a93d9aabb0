"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass, field
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class SSHConfig:
    """Remote shell configuration shared by every node session."""
    inline_key: Optional[str] = None
    key_path: Optional[str] = None
    key_passphrase: Optional[str] = None
    password: Optional[str] = None
    default_user: Optional[str] = None
    process_user: Optional[str] = None
    default_port: int = 22
    connect_timeout: float = 12.0
    command_timeout: float = 60.0
    ciphers: List[str] = field(default_factory=list)
    kex: List[str] = field(default_factory=list)
    macs: List[str] = field(default_factory=list)
    host_key_algorithms: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TelemetryConfig:
    """Telemetry sampling configuration."""
    sample_interval: float = 1.1
    top_processes: int = 5


@dataclass(frozen=True)
class DeployConfig:
    """Deployment orchestration configuration."""
    readiness_attempts: int = 12
    readiness_interval: float = 5.0
    node_port_start: int = 30000
    node_port_min: int = 30000
    node_port_max: int = 32767
    reservation_ttl: int = 300
    managed_by: str = "nodepilot"


@dataclass(frozen=True)
class StorageConfig:
    """Port reservation storage configuration."""
    backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"


@dataclass(frozen=True)
class APIConfig:
    """API configuration."""
    port: int
    host: str
    log_level: str
    debug: bool


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_ssh_config(self) -> SSHConfig:
        """Get remote shell configuration."""
        ...

    def get_telemetry_config(self) -> TelemetryConfig:
        """Get telemetry configuration."""
        ...

    def get_deploy_config(self) -> DeployConfig:
        """Get deployment configuration."""
        ...

    def get_storage_config(self) -> StorageConfig:
        """Get storage configuration."""
        ...

    def get_api_config(self) -> APIConfig:
        """Get API configuration."""
        ...


def _parse_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_ssh_config(self) -> SSHConfig:
        """Get remote shell configuration from environment variables."""
        return SSHConfig(
            inline_key=os.getenv("NODE_MONITOR_SSH_KEY") or None,
            key_path=os.getenv("NODE_MONITOR_SSH_KEY_PATH") or None,
            key_passphrase=os.getenv("NODE_MONITOR_SSH_KEY_PASSPHRASE") or None,
            password=os.getenv("NODE_MONITOR_SSH_PASSWORD") or None,
            default_user=os.getenv("NODE_MONITOR_DEFAULT_SSH_USER") or None,
            process_user=os.getenv("USER") or os.getenv("LOGNAME") or None,
            default_port=_parse_int(os.getenv("NODE_MONITOR_DEFAULT_SSH_PORT"), 22),
            connect_timeout=_parse_float(os.getenv("NODE_MONITOR_SSH_CONNECT_TIMEOUT"), 12.0),
            command_timeout=_parse_float(os.getenv("NODE_MONITOR_SSH_COMMAND_TIMEOUT"), 60.0),
            ciphers=_parse_list(os.getenv("NODE_MONITOR_SSH_CIPHERS")),
            kex=_parse_list(os.getenv("NODE_MONITOR_SSH_KEX")),
            macs=_parse_list(os.getenv("NODE_MONITOR_SSH_MACS")),
            host_key_algorithms=_parse_list(
                os.getenv("NODE_MONITOR_SSH_SERVER_HOST_KEY_ALGORITHMS")
            ),
        )

    def get_telemetry_config(self) -> TelemetryConfig:
        """Get telemetry configuration from environment variables."""
        return TelemetryConfig(
            sample_interval=_parse_float(os.getenv("TELEMETRY_SAMPLE_INTERVAL"), 1.1),
            top_processes=_parse_int(os.getenv("TELEMETRY_TOP_PROCESSES"), 5),
        )

    def get_deploy_config(self) -> DeployConfig:
        """Get deployment configuration from environment variables."""
        return DeployConfig(
            readiness_attempts=_parse_int(os.getenv("DEPLOY_READINESS_ATTEMPTS"), 12),
            readiness_interval=_parse_float(os.getenv("DEPLOY_READINESS_INTERVAL"), 5.0),
            node_port_start=_parse_int(os.getenv("DEPLOY_NODE_PORT_START"), 30000),
            reservation_ttl=_parse_int(os.getenv("DEPLOY_PORT_RESERVATION_TTL"), 300),
        )

    def get_storage_config(self) -> StorageConfig:
        """Get storage configuration from environment variables."""
        return StorageConfig(
            backend=os.getenv("PORT_RESERVATION_BACKEND", "memory").lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
        )

    def get_api_config(self) -> APIConfig:
        """Get API configuration from environment variables."""
        return APIConfig(
            port=_parse_int(os.getenv("API_PORT"), 8080),
            host=os.getenv("API_HOST", "0.0.0.0"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            debug=os.getenv("API_DEBUG", "false").lower() == "true",
        )


# Singleton instance
_instance: Optional[ConfigProvider] = None


def get_config_provider() -> ConfigProvider:
    """Get the process-wide configuration provider."""
    global _instance
    if _instance is None:
        _instance = EnvConfigProvider()
    return _instance
