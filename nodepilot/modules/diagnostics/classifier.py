"""
Failure classification for workloads that did not become ready.

Classification is a substring search over raw diagnostic text (pod JSON,
events, describe output). Rules are checked in order and the first match
wins; the order is part of the contract.
"""

from dataclasses import dataclass
from typing import Protocol, Tuple

from nodepilot.modules.api.models import FailureCategory


@dataclass(frozen=True)
class Classification:
    category: FailureCategory
    message: str


@dataclass(frozen=True)
class ClassificationRule:
    category: FailureCategory
    needles: Tuple[str, ...]
    message: str


CLASSIFICATION_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        FailureCategory.UNSCHEDULABLE,
        ("Unschedulable",),
        "The pod cannot be scheduled. A node may lack resources or no node matches its selectors.",
    ),
    ClassificationRule(
        FailureCategory.IMAGE_PULL_ERROR,
        ("ImagePullBackOff", "ErrImagePull"),
        "The container image cannot be pulled. Check the image name and registry access.",
    ),
    ClassificationRule(
        FailureCategory.CONTAINER_CONFIG_ERROR,
        ("CreateContainerConfigError",),
        "The container configuration is invalid. Check referenced ConfigMaps and Secrets.",
    ),
    ClassificationRule(
        FailureCategory.INSUFFICIENT_RESOURCES,
        ("Insufficient",),
        "The node does not have enough CPU, memory or GPU resources.",
    ),
    ClassificationRule(
        FailureCategory.CRASH_LOOP_BACK_OFF,
        ("CrashLoopBackOff",),
        "The container keeps restarting. Check that the image has a runnable command.",
    ),
)

UNKNOWN_MESSAGE = "The cause could not be determined."


class FailureClassifier(Protocol):
    """Protocol for classifiers - allows swapping substring matching for structured parsing."""

    def classify(self, text: str) -> Classification:
        ...


class SubstringFailureClassifier:
    """Ordered substring rules; first match wins."""

    def __init__(self, rules: Tuple[ClassificationRule, ...] = CLASSIFICATION_RULES):
        self.rules = rules

    def classify(self, text: str) -> Classification:
        for rule in self.rules:
            if any(needle in text for needle in rule.needles):
                return Classification(rule.category, rule.message)
        return Classification(FailureCategory.UNKNOWN, UNKNOWN_MESSAGE)
