"""
Telemetry sampler.

Produces one ResourceSnapshot per call over one SSH session. CPU and
network rates come from two counter samples taken sample_interval seconds
apart; the same interval is the denominator of the rate math.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Union

from nodepilot.config import TelemetryConfig
from nodepilot.errors import CollectionError, CommandError
from nodepilot.modules.api.models import (
    CpuStats,
    GpuStats,
    MemoryStats,
    NetworkStats,
    NodeDescriptor,
    ProcessStats,
    ResourceSnapshot,
    StorageStats,
)
from nodepilot.modules.remote import CommandRunner, SessionFactory

from . import parsers

logger = logging.getLogger("nodepilot.telemetry")

CORES_COMMAND = "nproc"
LOADAVG_COMMAND = "cat /proc/loadavg"
CPU_STAT_COMMAND = "head -n 1 /proc/stat"
NET_DEV_COMMAND = "cat /proc/net/dev"
MEMORY_COMMAND = "free --mega"
DISK_COMMAND = "df -B1 / | tail -n 1"
GPU_COMMAND = (
    "nvidia-smi --query-gpu=name,index,utilization.gpu,memory.used,memory.total,temperature.gpu "
    "--format=csv,noheader"
)
PROCESS_COMMAND = "ps -eo pid,comm,user,%cpu,%mem --sort=-%cpu | head -n {lines}"


class TelemetrySampler:
    """Collects resource snapshots from nodes."""

    def __init__(
        self,
        session_factory: SessionFactory,
        config: Optional[TelemetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.sessions = session_factory
        self.config = config or TelemetryConfig()
        self._sleep = sleep

    async def snapshot(self, node: NodeDescriptor) -> ResourceSnapshot:
        """
        Take a snapshot of one node.

        Raises:
            ConfigurationError: No username or credential, before any I/O
            RemoteConnectionError / RemoteTimeoutError: Session failures
            CollectionError: A required read failed or was unparsable
        """
        interval = self.config.sample_interval

        async with self.sessions.open(node) as session:
            runner = CommandRunner(session)
            timestamp = datetime.now(UTC)

            cores = await self._read(runner, "cores", CORES_COMMAND, parsers.parse_cores)
            load = await self._read(runner, "load average", LOADAVG_COMMAND, parsers.parse_load_average)

            cpu_first = await self._read(runner, "cpu counters", CPU_STAT_COMMAND, parsers.parse_cpu_counters)
            net_first = await self._read(runner, "network counters", NET_DEV_COMMAND, parsers.parse_net_counters)

            await self._sleep(interval)

            cpu_second = await self._read(runner, "cpu counters", CPU_STAT_COMMAND, parsers.parse_cpu_counters)
            net_second = None
            if net_first is not None:
                net_second = await self._read(
                    runner, "network counters", NET_DEV_COMMAND, parsers.parse_net_counters
                )

            total_mb, used_mb = await self._read(runner, "memory", MEMORY_COMMAND, parsers.parse_memory)
            filesystem, mount, total_bytes, used_bytes = await self._read(
                runner, "storage", DISK_COMMAND, parsers.parse_disk_usage
            )

            gpus = await self._collect_gpus(runner)
            processes = await self._collect_processes(runner)

        network = self._network_stats(net_first, net_second, interval)
        cpu_percent = parsers.cpu_utilization(cpu_first, cpu_second)

        snapshot = ResourceSnapshot(
            address=node.address,
            timestamp=timestamp,
            cpu=CpuStats(
                usage_percent=round(cpu_percent, 1),
                cores=cores,
                load_average=tuple(round(value, 2) for value in load),
            ),
            memory=MemoryStats(
                total_mb=total_mb,
                used_mb=used_mb,
                usage_percent=round(parsers.percent(used_mb, total_mb), 1),
            ),
            storage=StorageStats(
                filesystem=filesystem,
                mount=mount,
                total_gb=round(parsers.to_gb(total_bytes), 2),
                used_gb=round(parsers.to_gb(used_bytes), 2),
                usage_percent=round(parsers.percent(used_bytes, total_bytes), 1),
            ),
            network=network,
            gpus=gpus,
            processes=processes,
        )
        logger.info(
            f"[{node.label}] snapshot: cpu={snapshot.cpu.usage_percent}% "
            f"mem={snapshot.memory.usage_percent}% disk={snapshot.storage.usage_percent}% "
            f"gpus={len(gpus)}"
        )
        return snapshot

    async def snapshot_many(
        self, nodes: Iterable[NodeDescriptor]
    ) -> Dict[str, Union[ResourceSnapshot, Exception]]:
        """
        Snapshot many nodes concurrently.

        Each node fails independently; its entry holds the exception instead
        of a snapshot.
        """
        nodes = list(nodes)
        results = await asyncio.gather(
            *(self.snapshot(node) for node in nodes), return_exceptions=True
        )
        collected: Dict[str, Union[ResourceSnapshot, Exception]] = {}
        for node, result in zip(nodes, results):
            if isinstance(result, Exception):
                logger.warning(f"[{node.label}] snapshot failed: {result}")
            collected[node.address] = result
        return collected

    async def _read(self, runner: CommandRunner, step: str, command: str, parse):
        try:
            output = await runner.run(command)
            return parse(output)
        except CommandError as e:
            raise CollectionError(runner.node.address, step, str(e)) from e
        except (ValueError, IndexError) as e:
            raise CollectionError(runner.node.address, step, f"unparsable output: {e}") from e

    async def _collect_gpus(self, runner: CommandRunner) -> List[GpuStats]:
        output = await runner.try_run(GPU_COMMAND)
        if not output:
            return []
        try:
            return parsers.parse_gpu_metrics(output)
        except ValueError as e:
            logger.debug(f"[{runner.node.address}] ignoring GPU output: {e}")
            return []

    async def _collect_processes(self, runner: CommandRunner) -> List[ProcessStats]:
        command = PROCESS_COMMAND.format(lines=self.config.top_processes + 1)
        output = await runner.try_run(command)
        try:
            return parsers.parse_process_list(output)
        except ValueError as e:
            logger.debug(f"[{runner.node.address}] ignoring process list: {e}")
            return []

    @staticmethod
    def _network_stats(
        first: Optional[parsers.NetCounters],
        second: Optional[parsers.NetCounters],
        interval: float,
    ) -> NetworkStats:
        if first is None:
            return NetworkStats(interface="n/a", inbound_mbps=0.0, outbound_mbps=0.0, rx_bytes=0, tx_bytes=0)
        if second is None:
            return NetworkStats(
                interface=first.interface,
                inbound_mbps=0.0,
                outbound_mbps=0.0,
                rx_bytes=first.rx_bytes,
                tx_bytes=first.tx_bytes,
            )
        return NetworkStats(
            interface=first.interface,
            inbound_mbps=round(parsers.to_mbps(second.rx_bytes - first.rx_bytes, interval), 2),
            outbound_mbps=round(parsers.to_mbps(second.tx_bytes - first.tx_bytes, interval), 2),
            rx_bytes=second.rx_bytes,
            tx_bytes=second.tx_bytes,
        )
