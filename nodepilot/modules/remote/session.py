"""
SSH session factory.

paramiko is blocking, so connecting, executing and closing run in worker
threads; every node operation owns exactly one session, closed on every
exit path by SessionFactory.open().
"""

import asyncio
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable, Dict, List, Optional

import paramiko

from nodepilot.config import SSHConfig
from nodepilot.errors import (
    ConfigurationError,
    RemoteConnectionError,
    RemoteTimeoutError,
    command_summary,
)
from nodepilot.modules.api.models import NodeDescriptor

from .credentials import CredentialResolver, Credentials

logger = logging.getLogger("nodepilot.remote.session")

# Key classes tried, in order, for inline key text
KEY_CLASSES = (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey)

# paramiko's negotiable algorithms per class, used to turn allow-lists
# into the disabled_algorithms argument it accepts. These are private
# Transport attributes; the paramiko range is pinned in pyproject.toml.
SUPPORTED_ALGORITHMS = {
    "ciphers": paramiko.Transport._preferred_ciphers,
    "kex": paramiko.Transport._preferred_kex,
    "macs": paramiko.Transport._preferred_macs,
    "keys": paramiko.Transport._preferred_keys,
}


@dataclass
class CommandOutput:
    """Fully buffered result of one remote command."""

    command: str
    stdout: str
    stderr: str
    exit_code: int


@dataclass
class ConnectParams:
    host: str
    port: int
    username: str
    timeout: float
    pkey: Optional[paramiko.PKey] = field(default=None, repr=False)
    password: Optional[str] = field(default=None, repr=False)
    disabled_algorithms: Dict[str, List[str]] = field(default_factory=dict)


def load_private_key(key_text: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """Parse private key text with the first key class that accepts it."""
    last_error: Optional[Exception] = None
    for key_class in KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(key_text), password=passphrase)
        except (paramiko.SSHException, ValueError) as e:
            last_error = e
    raise paramiko.SSHException(f"Unsupported or undecryptable private key: {last_error}")


def build_disabled_algorithms(ssh_config: SSHConfig) -> Dict[str, List[str]]:
    """Disable every supported algorithm that is not in a configured allow-list."""
    allow_lists = {
        "ciphers": ssh_config.ciphers,
        "kex": ssh_config.kex,
        "macs": ssh_config.macs,
        "keys": ssh_config.host_key_algorithms,
    }
    disabled = {}
    for algorithm_class, allowed in allow_lists.items():
        if not allowed:
            continue
        disabled[algorithm_class] = [
            name for name in SUPPORTED_ALGORITHMS[algorithm_class] if name not in allowed
        ]
    return disabled


class RemoteSession:
    """A live authenticated connection to one node."""

    def __init__(self, client: paramiko.SSHClient, node: NodeDescriptor, command_timeout: float):
        self._client = client
        self.node = node
        self.command_timeout = command_timeout
        self._closed = False

    async def exec(self, command: str) -> CommandOutput:
        """Run one command and buffer its output until the process exits."""
        return await asyncio.to_thread(self._exec_blocking, command)

    def _exec_blocking(self, command: str) -> CommandOutput:
        try:
            stdin, stdout, stderr = self._client.exec_command(command, timeout=self.command_timeout)
            stdin.close()
            # stderr drains on its own thread so a full stderr window never stalls stdout
            with ThreadPoolExecutor(max_workers=1) as pool:
                pending_err = pool.submit(stderr.read)
                out = stdout.read().decode("utf-8", errors="replace")
                err = pending_err.result().decode("utf-8", errors="replace")
            exit_code = stdout.channel.recv_exit_status()
        except TimeoutError as e:
            raise RemoteTimeoutError(
                f"Command timed out after {self.command_timeout}s on {self.node.address}: {command_summary(command)}",
                address=self.node.address,
            ) from e
        except paramiko.SSHException as e:
            raise RemoteTimeoutError(
                f"SSH session to {self.node.address} terminated unexpectedly: {e}",
                address=self.node.address,
            ) from e
        return CommandOutput(command=command, stdout=out, stderr=err, exit_code=exit_code)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await asyncio.to_thread(self._client.close)


class SessionFactory:
    """Opens authenticated sessions to nodes."""

    def __init__(
        self,
        ssh_config: SSHConfig,
        resolver: Optional[CredentialResolver] = None,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
    ):
        self.ssh_config = ssh_config
        self.resolver = resolver or CredentialResolver(ssh_config)
        self._client_factory = client_factory

    def resolve_username(self, node: NodeDescriptor) -> Optional[str]:
        return node.ssh_user or self.ssh_config.default_user or self.ssh_config.process_user

    def resolve_port(self, node: NodeDescriptor) -> int:
        port = node.ssh_port or self.ssh_config.default_port
        return port if 0 < port < 65536 else 22

    def build_params(self, node: NodeDescriptor, credentials: Optional[Credentials] = None) -> ConnectParams:
        """
        Build connection parameters without touching the network.

        Raises:
            ConfigurationError: If no username or no authentication material
        """
        username = self.resolve_username(node)
        if not username:
            raise ConfigurationError(
                f"No SSH user for node {node.address}. Set a per-node SSH user "
                "or NODE_MONITOR_DEFAULT_SSH_USER."
            )

        credentials = credentials or self.resolver.resolve()
        if not credentials.has_auth:
            raise ConfigurationError(
                "An SSH private key or password is required. Set NODE_MONITOR_SSH_KEY_PATH / "
                "NODE_MONITOR_SSH_KEY or NODE_MONITOR_SSH_PASSWORD."
            )

        pkey = None
        if credentials.has_key:
            try:
                pkey = load_private_key(credentials.private_key, credentials.passphrase)
            except paramiko.SSHException as e:
                if not credentials.password:
                    raise ConfigurationError(f"SSH private key could not be loaded: {e}") from e
                logger.warning(f"SSH private key could not be loaded, using password auth: {e}")

        return ConnectParams(
            host=node.address,
            port=self.resolve_port(node),
            username=username,
            timeout=self.ssh_config.connect_timeout,
            pkey=pkey,
            password=credentials.password,
            disabled_algorithms=build_disabled_algorithms(self.ssh_config),
        )

    @asynccontextmanager
    async def open(self, node: NodeDescriptor) -> AsyncIterator[RemoteSession]:
        """
        Open a session to a node and close it on every exit path.

        Raises:
            ConfigurationError: Before any network I/O
            RemoteConnectionError: Handshake or authentication failure
            RemoteTimeoutError: Connect timeout
        """
        params = self.build_params(node)
        client = await asyncio.to_thread(self._connect, params)
        session = RemoteSession(client, node, self.ssh_config.command_timeout)
        logger.debug(f"SSH session opened: {params.username}@{params.host}:{params.port}")
        try:
            yield session
        finally:
            await session.close()
            logger.debug(f"SSH session closed: {params.host}")

    def _connect(self, params: ConnectParams) -> paramiko.SSHClient:
        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=params.host,
                port=params.port,
                username=params.username,
                pkey=params.pkey,
                password=params.password,
                timeout=params.timeout,
                banner_timeout=params.timeout,
                auth_timeout=params.timeout,
                allow_agent=False,
                look_for_keys=False,
                disabled_algorithms=params.disabled_algorithms or None,
            )
        except TimeoutError as e:
            client.close()
            raise RemoteTimeoutError(
                f"SSH connection to {params.host}:{params.port} timed out after {params.timeout}s",
                address=params.host,
            ) from e
        except paramiko.AuthenticationException as e:
            client.close()
            raise RemoteConnectionError(
                f"SSH authentication failed for {params.username}@{params.host}: {e}",
                address=params.host,
            ) from e
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise RemoteConnectionError(
                f"SSH connection to {params.host}:{params.port} failed: {e}",
                address=params.host,
            ) from e
        return client
