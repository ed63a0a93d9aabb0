"""
Error taxonomy for nodepilot.

Every failure raised by the core derives from NodePilotError so callers can
catch the whole family. Connection and timeout failures also derive from the
matching builtin exceptions.
"""

from typing import Optional


def command_summary(command: str, limit: int = 200) -> str:
    """First line of a command; here-document bodies may carry secrets."""
    first_line = command.splitlines()[0] if command else ""
    return first_line[:limit]


class NodePilotError(Exception):
    """Base class for all nodepilot failures."""


class ConfigurationError(NodePilotError):
    """No usable username or authentication material. Never retried."""


class RemoteConnectionError(NodePilotError, ConnectionError):
    """Handshake or authentication with a node failed."""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message)
        self.address = address


class RemoteTimeoutError(NodePilotError, TimeoutError):
    """Connect timeout, command timeout or unexpected session termination."""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message)
        self.address = address


class CommandError(NodePilotError):
    """A remote command failed under the runner's success policy."""

    def __init__(self, command: str, exit_code: int, stderr: str):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            stderr.strip() or f"Command failed with exit code {exit_code}: {command_summary(command)}"
        )


class CollectionError(NodePilotError):
    """A required telemetry read failed on a node."""

    def __init__(self, address: str, step: str, message: str):
        self.address = address
        self.step = step
        super().__init__(f"[{address}] {step}: {message}")


class DeploymentError(NodePilotError):
    """A deployment step failed."""


class DeploymentTimeoutError(DeploymentError):
    """
    Readiness polling was exhausted.

    Carries the best-effort failure classification and the raw diagnostic
    text gathered on the timeout transition.
    """

    def __init__(
        self,
        message: str,
        classification: str = "Unknown",
        diagnostics: str = "",
        pod_name: Optional[str] = None,
    ):
        super().__init__(message)
        self.classification = classification
        self.diagnostics = diagnostics
        self.pod_name = pod_name


class CleanupError(NodePilotError):
    """A teardown could not be attempted at all."""
