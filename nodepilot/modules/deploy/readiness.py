"""
Readiness polling.

A pure state machine: waiting -> ready | timeout. Each attempt sleeps,
then probes the pods labelled with the workload's app name. Probe failures
count as "not ready" and never end the loop early. Diagnosis is left to the
caller, on the timeout transition only.
"""

import asyncio
import json
import logging
import shlex
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from nodepilot.errors import CommandError, RemoteTimeoutError
from nodepilot.modules.remote import CommandRunner

logger = logging.getLogger("nodepilot.deploy.readiness")


@dataclass(frozen=True)
class PodProbe:
    """What one probe saw of the workload's first pod."""

    pod_name: Optional[str] = None
    phase: str = "Unknown"
    waiting_reason: str = ""
    waiting_message: str = ""

    @property
    def ready(self) -> bool:
        return self.pod_name is not None and self.phase == "Running" and not self.waiting_reason


@dataclass(frozen=True)
class ReadinessOutcome:
    ready: bool
    attempts: int
    probe: PodProbe


def pods_command(namespace: str, app: str) -> str:
    return (
        f"kubectl get pods -n {shlex.quote(namespace)} -l app={shlex.quote(app)} "
        "-o json 2>/dev/null || echo '{\"items\":[]}'"
    )


def parse_pod_probe(output: str) -> PodProbe:
    """Read the first pod of a "kubectl get pods -o json" listing."""
    try:
        data = json.loads(output or "{}")
    except json.JSONDecodeError:
        return PodProbe()
    if not isinstance(data, dict):
        return PodProbe()

    items = data.get("items") or []
    if not items:
        return PodProbe()

    pod = items[0]
    status = pod.get("status") or {}
    waiting_reason = ""
    waiting_message = ""
    for container in status.get("containerStatuses") or []:
        waiting = (container.get("state") or {}).get("waiting")
        if waiting:
            waiting_reason = waiting.get("reason", "")
            waiting_message = waiting.get("message", "")
            break

    phase = status.get("phase", "Unknown")
    if not waiting_reason and phase == "Pending":
        for condition in status.get("conditions") or []:
            if condition.get("status") == "False" and condition.get("reason"):
                waiting_reason = condition["reason"]
                waiting_message = condition.get("message", "")
                break

    return PodProbe(
        pod_name=(pod.get("metadata") or {}).get("name"),
        phase=phase,
        waiting_reason=waiting_reason,
        waiting_message=waiting_message,
    )


class ReadinessPoller:
    """Bounded poll for a running pod."""

    def __init__(
        self,
        attempts: int = 12,
        interval: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.attempts = attempts
        self.interval = interval
        self._sleep = sleep

    async def probe(self, runner: CommandRunner, namespace: str, app: str) -> PodProbe:
        try:
            output = await runner.run(pods_command(namespace, app))
        except (CommandError, RemoteTimeoutError) as e:
            logger.debug(f"[{runner.node.address}] readiness probe failed: {e}")
            return PodProbe()
        return parse_pod_probe(output)

    async def wait(self, runner: CommandRunner, namespace: str, app: str) -> ReadinessOutcome:
        probe = PodProbe()
        for attempt in range(1, self.attempts + 1):
            await self._sleep(self.interval)
            probe = await self.probe(runner, namespace, app)
            if probe.ready:
                logger.info(
                    f"[{runner.node.address}] pod {probe.pod_name} running after {attempt} attempt(s)"
                )
                return ReadinessOutcome(ready=True, attempts=attempt, probe=probe)
            logger.info(
                f"[{runner.node.address}] waiting for {namespace}/{app} "
                f"({attempt}/{self.attempts}): phase={probe.phase} {probe.waiting_reason}".rstrip()
            )
        return ReadinessOutcome(ready=False, attempts=self.attempts, probe=probe)
