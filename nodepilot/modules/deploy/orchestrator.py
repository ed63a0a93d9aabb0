"""
Deployment orchestrator.

Drives one deployment over one session:

    rendering -> applying-namespace -> applying-workload -> waiting-ready
        -> allocating-port -> ready
    waiting-ready -> failed

The generated root password leaves this module only inside the returned
DeploymentResult, as a SecretStr.
"""

import asyncio
import logging
import shlex
from enum import Enum
from typing import Awaitable, Callable, Optional

from nodepilot.config import DeployConfig
from nodepilot.errors import CommandError, DeploymentError, DeploymentTimeoutError
from nodepilot.modules.api.models import (
    AllocationStatus,
    DeploymentRequest,
    DeploymentResult,
    derive_service_name,
)
from nodepilot.modules.diagnostics import Diagnostics, FailureClassifier
from nodepilot.modules.remote import CommandRunner, SessionFactory

from . import manifest
from .ports import PortAllocator, PortReservations
from .readiness import ReadinessPoller

logger = logging.getLogger("nodepilot.deploy")


class DeploymentPhase(str, Enum):
    RENDERING = "rendering"
    APPLYING_NAMESPACE = "applying-namespace"
    APPLYING_WORKLOAD = "applying-workload"
    WAITING_READY = "waiting-ready"
    ALLOCATING_PORT = "allocating-port"
    READY = "ready"
    FAILED = "failed"


def namespace_command(namespace: str) -> str:
    ns = shlex.quote(namespace)
    return f"kubectl create namespace {ns} --dry-run=client -o yaml | kubectl apply -f -"


class DeploymentOrchestrator:
    """Deploys SSH-accessible containers onto nodes through kubectl."""

    def __init__(
        self,
        session_factory: SessionFactory,
        config: Optional[DeployConfig] = None,
        reservations: Optional[PortReservations] = None,
        classifier: Optional[FailureClassifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        password_factory: Callable[[], str] = manifest.generate_access_password,
    ):
        self.sessions = session_factory
        self.config = config or DeployConfig()
        self.ports = PortAllocator(self.config, reservations)
        self.poller = ReadinessPoller(
            attempts=self.config.readiness_attempts,
            interval=self.config.readiness_interval,
            sleep=sleep,
        )
        self.classifier = classifier
        self._password_factory = password_factory

    def _transition(self, request: DeploymentRequest, phase: DeploymentPhase) -> None:
        logger.info(
            f"[{request.node.address}] {request.namespace}/{request.deployment_name}: {phase.value}"
        )

    async def deploy(self, request: DeploymentRequest) -> DeploymentResult:
        """
        Deploy a workload and expose its SSH port.

        Raises:
            ConfigurationError: No username or credential, before any I/O
            RemoteConnectionError / RemoteTimeoutError: Session failures
            DeploymentTimeoutError: The pod never reached Running
            DeploymentError: Any other failed step
        """
        self._transition(request, DeploymentPhase.RENDERING)
        root_password = self._password_factory()
        workload = manifest.deployment_manifest(request, root_password, self.config.managed_by)

        async with self.sessions.open(request.node) as session:
            runner = CommandRunner(session)

            self._transition(request, DeploymentPhase.APPLYING_NAMESPACE)
            await self.ensure_namespace(runner, request.namespace)

            self._transition(request, DeploymentPhase.APPLYING_WORKLOAD)
            await self._apply(runner, workload, "workload")

            self._transition(request, DeploymentPhase.WAITING_READY)
            outcome = await self.poller.wait(runner, request.namespace, request.deployment_name)
            if not outcome.ready:
                self._transition(request, DeploymentPhase.FAILED)
                raise await self._timeout_error(runner, request, outcome.probe)

            self._transition(request, DeploymentPhase.ALLOCATING_PORT)
            node_port = await self.ports.allocate(runner)
            try:
                service = manifest.service_manifest(request, node_port, self.config.managed_by)
                await self._apply(runner, service, "service")
            finally:
                await self.ports.release(request.node.address, node_port)

        self._transition(request, DeploymentPhase.READY)
        logger.info(
            f"[{request.node.address}] root credential for {request.deployment_name} handed to caller"
        )
        return DeploymentResult(
            pod_name=outcome.probe.pod_name,
            deployment_name=request.deployment_name,
            service_name=derive_service_name(request.deployment_name),
            namespace=request.namespace,
            service_port=manifest.SSH_PORT,
            access_host=request.node.address,
            access_port=node_port,
            access_url=f"ssh://{request.node.address}:{node_port}",
            root_password=root_password,
            status=AllocationStatus.RUNNING,
        )

    async def ensure_namespace(self, runner: CommandRunner, namespace: str) -> None:
        """Create a namespace if missing; an existing namespace is success."""
        try:
            await runner.run(namespace_command(namespace))
            return
        except CommandError as e:
            if "already exists" in str(e):
                logger.debug(f"[{runner.node.address}] namespace {namespace} already exists")
                return
            error = e

        check = await runner.try_run(
            f"kubectl get namespace {shlex.quote(namespace)} -o name 2>/dev/null || echo ''"
        )
        if check:
            logger.debug(f"[{runner.node.address}] namespace {namespace} present despite apply error")
            return
        raise DeploymentError(f"Failed to create namespace {namespace}: {error}") from error

    async def _apply(self, runner: CommandRunner, document: dict, what: str) -> str:
        try:
            output = await runner.run(manifest.apply_command(document))
        except CommandError as e:
            raise DeploymentError(f"Failed to apply {what}: {e}") from e
        logger.debug(f"[{runner.node.address}] apply {what}: {output}")
        return output

    async def _timeout_error(self, runner, request, probe) -> DeploymentTimeoutError:
        diagnostics = Diagnostics(runner, self.classifier)
        diagnosis = await diagnostics.diagnose_workload(
            request.namespace,
            request.deployment_name,
            pod_name=probe.pod_name,
            waiting_reason=probe.waiting_reason,
            waiting_message=probe.waiting_message,
        )
        category = diagnosis.classification.category
        timeout = self.poller.attempts * self.poller.interval
        message = (
            f"Deployment {request.deployment_name} was not ready after {timeout:g}s "
            f"({category.value}): {diagnosis.classification.message}"
        )
        if probe.waiting_reason:
            message += f" Last state: {probe.waiting_reason} {probe.waiting_message}".rstrip()
        logger.error(f"[{request.node.address}] {message}")
        return DeploymentTimeoutError(
            message,
            classification=category.value,
            diagnostics=diagnosis.raw,
            pod_name=probe.pod_name,
        )
