"""
Deploy Module - Black Box Interface

Purpose: Deploy SSH-accessible containers onto nodes
Interface: DeploymentOrchestrator.deploy(), PortAllocator, ReadinessPoller
Hidden: Manifest rendering, NodePort scanning, pod polling
"""

from .manifest import (
    PASSWORD_ALPHABET,
    apply_command,
    cpu_millicores,
    deployment_manifest,
    generate_access_password,
    memory_mebibytes,
    service_manifest,
)
from .orchestrator import DeploymentOrchestrator, DeploymentPhase
from .ports import (
    InMemoryPortReservations,
    PortAllocator,
    PortReservations,
    RedisPortReservations,
    find_free_port,
    parse_node_ports,
)
from .readiness import PodProbe, ReadinessOutcome, ReadinessPoller, parse_pod_probe

__all__ = [
    "DeploymentOrchestrator",
    "DeploymentPhase",
    "InMemoryPortReservations",
    "PASSWORD_ALPHABET",
    "PodProbe",
    "PortAllocator",
    "PortReservations",
    "ReadinessOutcome",
    "ReadinessPoller",
    "RedisPortReservations",
    "apply_command",
    "cpu_millicores",
    "deployment_manifest",
    "find_free_port",
    "generate_access_password",
    "memory_mebibytes",
    "parse_node_ports",
    "parse_pod_probe",
    "service_manifest",
]
