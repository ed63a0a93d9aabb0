"""
Teardown of deployed workloads.

Deletions are best-effort: each command suppresses its own failure with
"|| echo ''", a missing resource is not an error, and anything that still
fails is logged and recorded on the CleanupResult instead of raised.
"""

import logging
import shlex
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from nodepilot.errors import (
    CommandError,
    ConfigurationError,
    NodePilotError,
    RemoteTimeoutError,
    CleanupError,
)
from nodepilot.modules.api.models import (
    CleanupResult,
    DiagnosisResult,
    NodeDescriptor,
    derive_service_name,
)
from nodepilot.modules.remote import CommandRunner, SessionFactory

from .classifier import FailureClassifier
from .diagnosis import Diagnostics

logger = logging.getLogger("nodepilot.cleanup")


class CleanupModule:
    """Deletes pods, deployments with their services, and namespaces."""

    def __init__(self, session_factory: SessionFactory, classifier: Optional[FailureClassifier] = None):
        self.sessions = session_factory
        self.classifier = classifier

    @asynccontextmanager
    async def _runner(self, node: NodeDescriptor, action: str) -> AsyncIterator[CommandRunner]:
        try:
            async with self.sessions.open(node) as session:
                yield CommandRunner(session)
        except (ConfigurationError, CleanupError):
            raise
        except NodePilotError as e:
            logger.error(f"[{node.label}] {action} could not be attempted: {e}")
            raise CleanupError(f"{action} on {node.address} failed: {e}") from e

    async def _delete(self, runner: CommandRunner, result: CleanupResult, kind: str, name: str) -> None:
        command = f"kubectl delete {kind} {shlex.quote(name)} -n {shlex.quote(result.namespace)} 2>&1 || echo ''"
        if kind == "namespace":
            command = f"kubectl delete namespace {shlex.quote(name)} 2>&1 || echo ''"
        try:
            output = await runner.run(command)
            result.outputs[f"{kind}/{name}"] = output
            logger.info(f"[{runner.node.address}] delete {kind} {name}: {output or 'no output'}")
        except (CommandError, RemoteTimeoutError) as e:
            result.errors.append(f"{kind}/{name}: {e}")
            logger.warning(f"[{runner.node.address}] delete {kind} {name} failed (ignored): {e}")

    async def delete_pod(self, node: NodeDescriptor, namespace: str, pod_name: str) -> CleanupResult:
        result = CleanupResult(target=f"pod/{pod_name}", namespace=namespace)
        async with self._runner(node, f"delete pod {pod_name}") as runner:
            await self._delete(runner, result, "pod", pod_name)
        return result

    async def delete_deployment(
        self, node: NodeDescriptor, namespace: str, deployment_name: str
    ) -> CleanupResult:
        """Delete a deployment and the NodePort service derived from its name."""
        result = CleanupResult(target=f"deployment/{deployment_name}", namespace=namespace)
        async with self._runner(node, f"delete deployment {deployment_name}") as runner:
            await self._delete(runner, result, "service", derive_service_name(deployment_name))
            await self._delete(runner, result, "deployment", deployment_name)
        return result

    async def delete_namespace(self, node: NodeDescriptor, namespace: str) -> CleanupResult:
        """Delete a namespace and, implicitly, everything in it."""
        result = CleanupResult(target=f"namespace/{namespace}", namespace=namespace)
        async with self._runner(node, f"delete namespace {namespace}") as runner:
            await self._delete(runner, result, "namespace", namespace)
        return result

    async def diagnose_pod(self, node: NodeDescriptor, namespace: str, pod_name: str) -> DiagnosisResult:
        """Classify why a pod is pending or failing."""
        async with self.sessions.open(node) as session:
            diagnostics = Diagnostics(CommandRunner(session), self.classifier)
            return await diagnostics.diagnose_pod(namespace, pod_name)
