"""
nodepilot shared data models.

These models define the structure of all data passed between
the core modules and their callers.
"""

import secrets
import time
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    computed_field,
    field_validator,
    model_validator,
)

# Enums


class AllocationStatus(str, Enum):
    """Caller-visible lifecycle of an allocation."""

    DEPLOYING = "deploying"
    RUNNING = "running"
    FAILED = "failed"
    TERMINATED = "terminated"


class NodeHealth(str, Enum):
    """Health badge derived from a snapshot."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class FailureCategory(str, Enum):
    """Classification of a workload that did not become ready."""

    UNSCHEDULABLE = "Unschedulable"
    IMAGE_PULL_ERROR = "ImagePullError"
    CONTAINER_CONFIG_ERROR = "ContainerConfigError"
    INSUFFICIENT_RESOURCES = "InsufficientResources"
    CRASH_LOOP_BACK_OFF = "CrashLoopBackOff"
    UNKNOWN = "Unknown"


# Node


class NodeDescriptor(BaseModel):
    """A node reachable over SSH. Identity is the address."""

    model_config = ConfigDict(frozen=True)

    address: str = Field(..., description="Hostname or IP address", min_length=1)
    ssh_user: Optional[str] = Field(None, description="Per-node SSH user override")
    ssh_port: Optional[int] = Field(None, description="Per-node SSH port override", ge=1, le=65535)
    name: Optional[str] = Field(None, description="Display name")
    node_id: Optional[str] = Field(None, description="Caller-side identifier")
    role: Optional[str] = Field(None, description="Node role, e.g. 'gpu-worker'")

    @property
    def label(self) -> str:
        """Human-readable identifier for log lines."""
        if self.name:
            return f"{self.name} ({self.address})"
        return self.address


# Snapshot


class CpuStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    usage_percent: float
    cores: int
    load_average: Tuple[float, float, float]


class MemoryStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_mb: int
    used_mb: int
    usage_percent: float


class StorageStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    filesystem: str
    mount: str
    total_gb: float
    used_gb: float
    usage_percent: float


class NetworkStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    interface: str
    inbound_mbps: float
    outbound_mbps: float
    rx_bytes: int
    tx_bytes: int


class GpuStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    index: int
    usage_percent: float
    memory_used_gb: float
    memory_total_gb: float
    temperature_c: float


class ProcessStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    pid: int
    name: str
    user: str
    cpu_percent: float
    memory_percent: float


class ResourceSnapshot(BaseModel):
    """Point-in-time telemetry for one node."""

    model_config = ConfigDict(frozen=True)

    address: str
    timestamp: datetime
    cpu: CpuStats
    memory: MemoryStats
    storage: StorageStats
    network: NetworkStats
    gpus: List[GpuStats] = Field(default_factory=list)
    processes: List[ProcessStats] = Field(default_factory=list)

    @computed_field
    @property
    def health(self) -> NodeHealth:
        """Worst of CPU, memory and GPU utilization mapped to a badge."""
        peak = max(
            [self.cpu.usage_percent, self.memory.usage_percent]
            + [gpu.usage_percent for gpu in self.gpus]
        )
        if peak >= 90:
            return NodeHealth.CRITICAL
        if peak >= 75:
            return NodeHealth.WARNING
        return NodeHealth.HEALTHY


# Deployment

MAX_NAME_LENGTH = 63


def generate_deployment_name(prefix: str = "deploy") -> str:
    """Unique-enough name for callers that do not pick one."""
    return f"{prefix}-{int(time.time())}-{secrets.token_hex(3)}"


def derive_service_name(deployment_name: str) -> str:
    """Service names start with a letter, so "deploy-x" becomes "svc-x"."""
    suffix = deployment_name[len("deploy-"):] if deployment_name.startswith("deploy-") else deployment_name
    return f"svc-{suffix}"


class DeploymentRequest(BaseModel):
    """Deploy one image with the requested resources onto one node."""

    node: NodeDescriptor
    namespace: str = Field(..., min_length=1, max_length=MAX_NAME_LENGTH)
    image: str = Field(..., min_length=1, description="Container image reference")
    deployment_name: str = Field(
        default_factory=generate_deployment_name, min_length=1, max_length=MAX_NAME_LENGTH
    )
    cpu_cores: float = Field(..., gt=0)
    gpu_count: int = Field(default=0, ge=0)
    memory_gb: float = Field(..., gt=0)
    storage_gb: float = Field(default=0, ge=0)

    @field_validator("namespace", "deployment_name")
    @classmethod
    def validate_dns_label(cls, v):
        """Kubernetes object names must be lowercase DNS labels."""
        allowed = set("abcdefghijklmnopqrstuvwxyz0123456789-")
        if not set(v) <= allowed or v.startswith("-") or v.endswith("-"):
            raise ValueError(f"Invalid Kubernetes name: {v}")
        return v

    @model_validator(mode="after")
    def validate_service_name(self):
        """The derived Service name must also fit in a DNS label."""
        service_name = derive_service_name(self.deployment_name)
        if len(service_name) > MAX_NAME_LENGTH:
            raise ValueError(
                f"Deployment name {self.deployment_name} yields service name "
                f"{service_name} longer than {MAX_NAME_LENGTH} characters"
            )
        return self


class DeploymentResult(BaseModel):
    """
    Access details of a running deployment.

    The root password is a SecretStr: it is masked in reprs and logs, and
    the caller takes ownership of it explicitly with get_secret_value().
    """

    model_config = ConfigDict(frozen=True)

    pod_name: str
    deployment_name: str
    service_name: str
    namespace: str
    service_port: int = 22
    access_host: str
    access_port: int
    access_url: str
    root_password: SecretStr
    status: AllocationStatus = AllocationStatus.RUNNING


class DeploymentResponse(BaseModel):
    """HTTP response for a deployment; the one-time password is revealed here."""

    pod_name: str
    deployment_name: str
    service_name: str
    namespace: str
    service_port: int
    access_host: str
    access_port: int
    access_url: str
    root_password: str
    status: AllocationStatus

    @classmethod
    def from_result(cls, result: DeploymentResult) -> "DeploymentResponse":
        data = result.model_dump()
        data["root_password"] = result.root_password.get_secret_value()
        return cls(**data)


# Diagnostics and cleanup


class DiagnosisResult(BaseModel):
    reason: FailureCategory = FailureCategory.UNKNOWN
    message: str
    events: str = ""
    pod_details: str = ""


class CleanupResult(BaseModel):
    """Outcome of a best-effort teardown."""

    target: str
    namespace: str
    outputs: Dict[str, str] = Field(default_factory=dict)
    errors: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors


class PodCleanupRequest(BaseModel):
    node: NodeDescriptor
    namespace: str
    pod_name: str


class DeploymentCleanupRequest(BaseModel):
    node: NodeDescriptor
    namespace: str
    deployment_name: str


class NamespaceCleanupRequest(BaseModel):
    node: NodeDescriptor
    namespace: str


# Images


class ContainerImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    tag: str
    digest: str = ""
    size: str = "0B"
    created_at: Optional[str] = None

    @property
    def reference(self) -> str:
        return f"{self.name}:{self.tag}"
