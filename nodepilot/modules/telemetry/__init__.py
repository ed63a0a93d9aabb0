"""
Telemetry Module - Black Box Interface

Purpose: Live resource snapshots of nodes
Interface: TelemetrySampler.snapshot(), TelemetrySampler.snapshot_many()
Hidden: /proc parsing, counter delta sampling, vendor GPU queries
"""

from .parsers import CpuCounters, NetCounters, cpu_utilization, to_mbps
from .sampler import TelemetrySampler

__all__ = ["CpuCounters", "NetCounters", "TelemetrySampler", "cpu_utilization", "to_mbps"]
