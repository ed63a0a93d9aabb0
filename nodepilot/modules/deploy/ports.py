"""
NodePort allocation.

The cluster is scanned for assigned NodePorts and the first free port at or
above the configured start is picked. When the range is exhausted a random
port is returned; uniqueness is then best effort. A reservation store
closes the window between picking a port and creating the service for
deployments that share the store.
"""

import asyncio
import logging
import random
import time
from typing import Dict, Iterable, Optional, Protocol, Set, Tuple

import redis.asyncio as redis

from nodepilot.config import DeployConfig
from nodepilot.modules.remote import CommandRunner

logger = logging.getLogger("nodepilot.deploy.ports")

NODE_PORT_SCAN_COMMAND = (
    "kubectl get services -A -o jsonpath='{.items[*].spec.ports[*].nodePort}' 2>/dev/null || echo ''"
)


def parse_node_ports(output: str) -> Set[int]:
    """Space separated jsonpath output; blanks and junk are skipped."""
    ports = set()
    for token in output.split():
        if token.isdigit():
            ports.add(int(token))
    return ports


def find_free_port(
    used: Iterable[int],
    start: int = 30000,
    low: int = 30000,
    high: int = 32767,
    rng: Optional[random.Random] = None,
) -> Tuple[int, bool]:
    """
    Pick a NodePort.

    Returns:
        (port, exact) where exact is False for the random fallback
    """
    used = set(used)
    for port in range(max(start, low), high + 1):
        if port not in used:
            return port, True
    return (rng or random).randint(low, high), False


class PortReservations(Protocol):
    """Short-lived claims on NodePorts, keyed by node address."""

    async def reserve(self, node: str, port: int, ttl: int) -> bool:
        ...

    async def reserved(self, node: str) -> Set[int]:
        ...

    async def release(self, node: str, port: int) -> None:
        ...


class InMemoryPortReservations:
    """Reservations shared by the coroutines of one process."""

    def __init__(self, clock=time.monotonic):
        self._lock = asyncio.Lock()
        self._expiry: Dict[Tuple[str, int], float] = {}
        self._clock = clock

    def _purge(self) -> None:
        now = self._clock()
        for key in [key for key, expires in self._expiry.items() if expires <= now]:
            del self._expiry[key]

    async def reserve(self, node: str, port: int, ttl: int) -> bool:
        async with self._lock:
            self._purge()
            if (node, port) in self._expiry:
                return False
            self._expiry[(node, port)] = self._clock() + ttl
            return True

    async def reserved(self, node: str) -> Set[int]:
        async with self._lock:
            self._purge()
            return {port for address, port in self._expiry if address == node}

    async def release(self, node: str, port: int) -> None:
        async with self._lock:
            self._expiry.pop((node, port), None)


class RedisPortReservations:
    """Reservations shared by every worker connected to the same Redis."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = "nodepilot:nodeport"):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _key(self, node: str, port: int) -> str:
        return f"{self.key_prefix}:{node}:{port}"

    async def reserve(self, node: str, port: int, ttl: int) -> bool:
        return bool(await self.redis.set(self._key(node, port), "1", nx=True, ex=ttl))

    async def reserved(self, node: str) -> Set[int]:
        ports = set()
        async for key in self.redis.scan_iter(match=f"{self.key_prefix}:{node}:*"):
            suffix = key.rsplit(":", 1)[-1]
            if suffix.isdigit():
                ports.add(int(suffix))
        return ports

    async def release(self, node: str, port: int) -> None:
        await self.redis.delete(self._key(node, port))


class PortAllocator:
    """Scans the cluster and claims a free NodePort for one node."""

    def __init__(
        self,
        config: Optional[DeployConfig] = None,
        reservations: Optional[PortReservations] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or DeployConfig()
        self.reservations = reservations or InMemoryPortReservations()
        self.rng = rng or random.Random()

    async def assigned_ports(self, runner: CommandRunner) -> Set[int]:
        output = await runner.try_run(NODE_PORT_SCAN_COMMAND)
        return parse_node_ports(output)

    async def allocate(self, runner: CommandRunner) -> int:
        address = runner.node.address
        used = await self.assigned_ports(runner)
        used |= await self.reservations.reserved(address)

        while True:
            port, exact = find_free_port(
                used,
                start=self.config.node_port_start,
                low=self.config.node_port_min,
                high=self.config.node_port_max,
                rng=self.rng,
            )
            if not exact:
                logger.warning(
                    f"[{address}] NodePort range exhausted, using random port {port}"
                )
                await self.reservations.reserve(address, port, self.config.reservation_ttl)
                return port
            if await self.reservations.reserve(address, port, self.config.reservation_ttl):
                logger.info(f"[{address}] allocated NodePort {port}")
                return port
            used.add(port)

    async def release(self, node_address: str, port: int) -> None:
        await self.reservations.release(node_address, port)
