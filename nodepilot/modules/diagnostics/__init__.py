"""
Diagnostics Module - Black Box Interface

Purpose: Classify stuck workloads and tear deployments down
Interface: Diagnostics.diagnose_pod(), CleanupModule.delete_*(), FailureClassifier
Hidden: kubectl text scraping, substring rules, best-effort suppression
"""

from .classifier import (
    CLASSIFICATION_RULES,
    Classification,
    FailureClassifier,
    SubstringFailureClassifier,
)
from .cleanup import CleanupModule, derive_service_name
from .diagnosis import Diagnostics, WorkloadDiagnosis

__all__ = [
    "CLASSIFICATION_RULES",
    "Classification",
    "CleanupModule",
    "Diagnostics",
    "FailureClassifier",
    "SubstringFailureClassifier",
    "WorkloadDiagnosis",
    "derive_service_name",
]
