"""
Diagnostic reads for stuck pods and workloads.

Every read here is best-effort: a failing kubectl call contributes empty
text instead of an exception, so diagnosis can run inside failure paths.
"""

import logging
import shlex
from dataclasses import dataclass
from typing import Optional

from nodepilot.modules.api.models import DiagnosisResult
from nodepilot.modules.remote import CommandRunner

from .classifier import Classification, FailureClassifier, SubstringFailureClassifier

logger = logging.getLogger("nodepilot.diagnostics")


def format_sections(sections) -> str:
    return "\n".join(f"--- {title} ---\n{text}" for title, text in sections if text)


@dataclass
class WorkloadDiagnosis:
    """Classification plus the raw text it was derived from."""

    classification: Classification
    raw: str
    waiting_reason: str = ""
    waiting_message: str = ""


class Diagnostics:
    """Fetches and classifies diagnostic detail over an open session."""

    def __init__(self, runner: CommandRunner, classifier: Optional[FailureClassifier] = None):
        self.runner = runner
        self.classifier = classifier or SubstringFailureClassifier()

    async def pod_json(self, namespace: str, pod_name: str) -> str:
        return await self.runner.try_run(
            f"kubectl get pod {shlex.quote(pod_name)} -n {shlex.quote(namespace)} -o json 2>/dev/null || echo '{{}}'",
            default="{}",
        )

    async def pod_events(self, namespace: str, pod_name: str) -> str:
        return await self.runner.try_run(
            f"kubectl get events -n {shlex.quote(namespace)} "
            f"--field-selector involvedObject.name={shlex.quote(pod_name)} "
            "--sort-by='.lastTimestamp' 2>/dev/null || echo ''"
        )

    async def describe_pod(self, namespace: str, pod_name: str) -> str:
        return await self.runner.try_run(
            f"kubectl describe pod {shlex.quote(pod_name)} -n {shlex.quote(namespace)} 2>/dev/null || echo ''"
        )

    async def pod_logs(self, namespace: str, pod_name: str, tail: int = 50) -> str:
        return await self.runner.try_run(
            f"kubectl logs {shlex.quote(pod_name)} -n {shlex.quote(namespace)} --tail={tail} 2>/dev/null || echo ''"
        )

    async def diagnose_pod(self, namespace: str, pod_name: str) -> DiagnosisResult:
        """Classify why a single pod is not running."""
        pod_json = await self.pod_json(namespace, pod_name)
        events = await self.pod_events(namespace, pod_name)
        describe = await self.describe_pod(namespace, pod_name)

        classification = self.classifier.classify("\n".join([pod_json, events, describe]))
        logger.info(
            f"[{self.runner.node.address}] pod {namespace}/{pod_name} diagnosed as "
            f"{classification.category.value}"
        )
        return DiagnosisResult(
            reason=classification.category,
            message=classification.message,
            events=events,
            pod_details=describe,
        )

    async def diagnose_workload(
        self,
        namespace: str,
        deployment_name: str,
        pod_name: Optional[str] = None,
        waiting_reason: str = "",
        waiting_message: str = "",
    ) -> WorkloadDiagnosis:
        """
        Gather everything known about a deployment that never became ready.

        Used once, on the readiness timeout transition. Only text about the
        failed pod itself is classified; the namespace listing, deployment
        description and logs are carried in raw for the error message.
        """
        ns = shlex.quote(namespace)
        context = [
            ("pods", await self.runner.try_run(f"kubectl get pods -n {ns} 2>&1 || echo ''")),
            (
                "deployment",
                await self.runner.try_run(
                    f"kubectl describe deployment {shlex.quote(deployment_name)} -n {ns} 2>&1 || echo ''"
                ),
            ),
        ]
        pod_sections = []
        if pod_name:
            pod_sections.extend(
                [
                    ("pod", await self.pod_json(namespace, pod_name)),
                    ("events", await self.pod_events(namespace, pod_name)),
                    ("describe", await self.describe_pod(namespace, pod_name)),
                ]
            )
            context.append(("logs", await self.pod_logs(namespace, pod_name)))

        if waiting_reason:
            pod_sections.append(("waiting", f"{waiting_reason}: {waiting_message}".strip()))

        raw = format_sections(context + pod_sections)
        classification = self.classifier.classify(format_sections(pod_sections))
        return WorkloadDiagnosis(
            classification=classification,
            raw=raw,
            waiting_reason=waiting_reason,
            waiting_message=waiting_message,
        )
