import os
import sys

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nodepilot.config import EnvConfigProvider


@pytest.fixture
def clean_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith(("NODE_MONITOR_", "TELEMETRY_", "DEPLOY_", "PORT_RESERVATION_", "API_")):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_ssh_defaults(clean_env):
    clean_env.setenv("USER", "operator")

    config = EnvConfigProvider().get_ssh_config()

    assert config.default_port == 22
    assert config.connect_timeout == 12.0
    assert config.process_user == "operator"
    assert config.default_user is None
    assert config.ciphers == []


def test_ssh_from_env(clean_env):
    clean_env.setenv("NODE_MONITOR_SSH_KEY_PATH", "~/.ssh/id_ed25519")
    clean_env.setenv("NODE_MONITOR_SSH_PASSWORD", "pw")
    clean_env.setenv("NODE_MONITOR_DEFAULT_SSH_USER", "ops")
    clean_env.setenv("NODE_MONITOR_DEFAULT_SSH_PORT", "2222")
    clean_env.setenv("NODE_MONITOR_SSH_CIPHERS", "aes256-ctr, aes128-ctr,")
    clean_env.setenv("NODE_MONITOR_SSH_SERVER_HOST_KEY_ALGORITHMS", "ssh-ed25519")

    config = EnvConfigProvider().get_ssh_config()

    assert config.key_path == "~/.ssh/id_ed25519"
    assert config.password == "pw"
    assert config.default_user == "ops"
    assert config.default_port == 2222
    assert config.ciphers == ["aes256-ctr", "aes128-ctr"]
    assert config.host_key_algorithms == ["ssh-ed25519"]


def test_invalid_numbers_fall_back(clean_env):
    clean_env.setenv("NODE_MONITOR_DEFAULT_SSH_PORT", "ssh")
    clean_env.setenv("TELEMETRY_SAMPLE_INTERVAL", "fast")

    assert EnvConfigProvider().get_ssh_config().default_port == 22
    assert EnvConfigProvider().get_telemetry_config().sample_interval == 1.1


def test_deploy_and_storage(clean_env):
    clean_env.setenv("DEPLOY_READINESS_ATTEMPTS", "3")
    clean_env.setenv("DEPLOY_NODE_PORT_START", "31000")
    clean_env.setenv("PORT_RESERVATION_BACKEND", "Redis")

    deploy = EnvConfigProvider().get_deploy_config()
    storage = EnvConfigProvider().get_storage_config()

    assert deploy.readiness_attempts == 3
    assert deploy.readiness_interval == 5.0
    assert deploy.node_port_start == 31000
    assert storage.backend == "redis"


# =============================================================================
# Logging
# =============================================================================

def test_configure_logging_sets_levels():
    import logging

    from nodepilot.logging_config import configure_logging

    configure_logging("debug")

    assert logging.getLogger("nodepilot").level == logging.DEBUG
    assert logging.getLogger("paramiko").level == logging.WARNING


def test_health_check_access_lines_filtered():
    import logging

    from nodepilot.logging_config import HealthCheckFilter

    def access_record(message):
        return logging.LogRecord("uvicorn.access", logging.INFO, __file__, 1, message, None, None)

    health_filter = HealthCheckFilter()
    assert not health_filter.filter(access_record('127.0.0.1 - "GET /health HTTP/1.1" 200'))
    assert health_filter.filter(access_record('127.0.0.1 - "POST /deployments HTTP/1.1" 201'))
