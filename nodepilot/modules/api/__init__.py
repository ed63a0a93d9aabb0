"""
API Module - Black Box Interface

Purpose: Data models shared by the core modules and the HTTP surface
Interface: pydantic models and enums
Hidden: Nothing; this module holds no logic beyond derived properties
"""

from .models import (
    AllocationStatus,
    CleanupResult,
    ContainerImage,
    CpuStats,
    DeploymentCleanupRequest,
    DeploymentRequest,
    DeploymentResponse,
    DeploymentResult,
    DiagnosisResult,
    FailureCategory,
    GpuStats,
    MemoryStats,
    NamespaceCleanupRequest,
    NetworkStats,
    NodeDescriptor,
    NodeHealth,
    PodCleanupRequest,
    ProcessStats,
    ResourceSnapshot,
    StorageStats,
)

__all__ = [
    "AllocationStatus",
    "CleanupResult",
    "ContainerImage",
    "CpuStats",
    "DeploymentCleanupRequest",
    "DeploymentRequest",
    "DeploymentResponse",
    "DeploymentResult",
    "DiagnosisResult",
    "FailureCategory",
    "GpuStats",
    "MemoryStats",
    "NamespaceCleanupRequest",
    "NetworkStats",
    "NodeDescriptor",
    "NodeHealth",
    "PodCleanupRequest",
    "ProcessStats",
    "ResourceSnapshot",
    "StorageStats",
]
