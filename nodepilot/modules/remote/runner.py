"""
Command runner with the remote success policy.

A command fails only when it exits non-zero, writes to stderr and writes
nothing to stdout. Noisy CLIs that exit non-zero with a usable stdout, or
with an empty stderr, count as successful. Callers add their own
"|| true" style suppression when they want more leniency.
"""

import logging
from typing import Protocol

from nodepilot.errors import CommandError, RemoteTimeoutError, command_summary
from nodepilot.modules.api.models import NodeDescriptor

from .session import CommandOutput

logger = logging.getLogger("nodepilot.remote.runner")


class Session(Protocol):
    node: NodeDescriptor

    async def exec(self, command: str) -> CommandOutput:
        ...


def command_failed(output: CommandOutput) -> bool:
    """Apply the success policy to a finished command."""
    return output.exit_code != 0 and bool(output.stderr.strip()) and not output.stdout.strip()


class CommandRunner:
    """Executes single command strings over one open session."""

    def __init__(self, session: Session):
        self.session = session

    @property
    def node(self) -> NodeDescriptor:
        return self.session.node

    async def run(self, command: str) -> str:
        """
        Run a command and return its stripped stdout.

        Raises:
            CommandError: Non-zero exit with stderr and no stdout
        """
        output = await self.session.exec(command)
        if command_failed(output):
            raise CommandError(command, output.exit_code, output.stderr)
        if output.exit_code != 0:
            logger.debug(
                f"[{self.node.address}] exit code {output.exit_code} treated as success: {command_summary(command)}"
            )
        return output.stdout.strip()

    async def try_run(self, command: str, default: str = "") -> str:
        """Best-effort variant for enrichment reads; never raises for command failures."""
        try:
            return await self.run(command)
        except (CommandError, RemoteTimeoutError) as e:
            logger.debug(f"[{self.node.address}] best-effort command failed: {command_summary(command)}: {e}")
            return default
