"""
Parsers and rate math for node telemetry.

All functions are pure: they take raw command output and return numbers or
small records, so they can be tested without a node.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from nodepilot.modules.api.models import GpuStats, ProcessStats

BYTES_PER_GB = 1024 ** 3


@dataclass(frozen=True)
class CpuCounters:
    idle: int
    total: int


@dataclass(frozen=True)
class NetCounters:
    interface: str
    rx_bytes: int
    tx_bytes: int


def parse_cores(output: str) -> int:
    """Parse `nproc`; at least one core."""
    return max(int(output.strip()), 1)


def parse_load_average(output: str) -> Tuple[float, float, float]:
    """Parse the first three fields of /proc/loadavg."""
    parts = output.split()
    if len(parts) < 3:
        raise ValueError(f"Unexpected /proc/loadavg output: {output!r}")
    load1, load5, load15 = (float(value) for value in parts[:3])
    return load1, load5, load15


def parse_cpu_counters(output: str) -> CpuCounters:
    """
    Parse the aggregate "cpu" line of /proc/stat.

    Idle time is idle + iowait (fields 4 and 5); total is the sum of all
    fields.
    """
    parts = output.strip().splitlines()[0].split()
    if not parts or parts[0] != "cpu":
        raise ValueError(f"Unexpected /proc/stat output: {output!r}")
    values = [int(value) for value in parts[1:]]
    idle = sum(values[3:5])
    return CpuCounters(idle=idle, total=sum(values))


def parse_net_counters(output: str) -> Optional[NetCounters]:
    """Parse /proc/net/dev and return the first non-loopback interface."""
    for line in output.splitlines()[2:]:
        if ":" not in line:
            continue
        name, _, rest = line.strip().partition(":")
        name = name.strip()
        if name == "lo":
            continue
        fields = rest.split()
        rx_bytes = int(fields[0]) if len(fields) > 0 else 0
        tx_bytes = int(fields[8]) if len(fields) > 8 else 0
        return NetCounters(interface=name, rx_bytes=rx_bytes, tx_bytes=tx_bytes)
    return None


def cpu_utilization(first: CpuCounters, second: CpuCounters) -> float:
    """Busy share of the ticks elapsed between two samples, in percent."""
    total_delta = second.total - first.total
    idle_delta = second.idle - first.idle
    if total_delta <= 0:
        return 0.0
    return (total_delta - idle_delta) / total_delta * 100


def to_mbps(byte_delta: int, seconds: float) -> float:
    if seconds <= 0:
        return 0.0
    return byte_delta * 8 / (seconds * 1_000_000)


def to_gb(byte_count: int) -> float:
    return byte_count / BYTES_PER_GB


def percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


def parse_memory(output: str) -> Tuple[int, int]:
    """Parse `free --mega` into (total MB, used MB)."""
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("Mem:"):
            parts = line.split()
            return int(parts[1]), int(parts[2])
    raise ValueError(f"No 'Mem:' line in free output: {output!r}")


def parse_disk_usage(output: str) -> Tuple[str, str, int, int]:
    """Parse the last line of `df -B1 /` into (filesystem, mount, total, used)."""
    parts = output.strip().splitlines()[-1].split()
    if len(parts) < 6:
        raise ValueError(f"Unexpected df output: {output!r}")
    return parts[0], parts[5], int(parts[1]), int(parts[2])


def _leading_number(value: str) -> float:
    digits = "".join(ch for ch in value if ch.isdigit() or ch == ".")
    try:
        return float(digits)
    except ValueError:
        return 0.0


def parse_gpu_metrics(output: str) -> List[GpuStats]:
    """Parse `nvidia-smi --query-gpu=... --format=csv,noheader` lines."""
    gpus = []
    for line in output.strip().splitlines():
        fields = [value.strip() for value in line.split(",")]
        if len(fields) < 6:
            continue
        name, index, usage, mem_used, mem_total, temperature = fields[:6]
        gpus.append(
            GpuStats(
                name=name,
                index=int(index),
                usage_percent=_leading_number(usage),
                memory_used_gb=round(_leading_number(mem_used) / 1024, 2),
                memory_total_gb=round(_leading_number(mem_total) / 1024, 2),
                temperature_c=_leading_number(temperature),
            )
        )
    return gpus


def parse_process_list(output: str) -> List[ProcessStats]:
    """Parse `ps -eo pid,comm,user,%cpu,%mem` output, skipping the header."""
    processes = []
    for line in output.strip().splitlines()[1:]:
        parts = line.split()
        if len(parts) < 5:
            continue
        pid, name, user, cpu, mem = parts[:5]
        processes.append(
            ProcessStats(
                pid=int(pid),
                name=name,
                user=user,
                cpu_percent=float(cpu),
                memory_percent=float(mem),
            )
        )
    return processes
