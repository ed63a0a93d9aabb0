"""
Shared pytest fixtures for nodepilot tests.

This module provides common fixtures including:
- RemoteMocker: Pattern-matched canned responses for remote shell commands
- FakeSession / FakeSessionFactory: In-memory stand-ins for SSH sessions
- Redis mocks for port reservation tests
"""

import os
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Union
from unittest.mock import AsyncMock

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nodepilot.modules.api.models import NodeDescriptor
from nodepilot.modules.remote.session import CommandOutput


# =============================================================================
# Remote Shell Mocking Infrastructure
# =============================================================================

@dataclass
class RemoteResponse:
    """Represents a mocked remote command response."""
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    def to_output(self, command: str) -> CommandOutput:
        return CommandOutput(
            command=command,
            stdout=self.stdout,
            stderr=self.stderr,
            exit_code=self.exit_code,
        )


@dataclass
class RemoteCall:
    """Record of a remote command executed during testing."""
    address: str
    command: str
    matched_pattern: Optional[str] = None
    response: Optional[RemoteResponse] = None


ResponseSpec = Union[RemoteResponse, Exception, List[Union[RemoteResponse, Exception]]]


class RemoteMocker:
    """
    Mock remote commands with pattern-matched responses.

    A pattern may map to a single response, an exception to raise, or a
    list consumed in order (the last entry repeats once the list is used up).

    Usage:
        def test_cores(remote_mocker):
            remote_mocker.register("nproc", RemoteResponse(stdout="8"))

            # Run code that executes commands over a FakeSession

            assert remote_mocker.was_called_with("nproc")
    """

    def __init__(self):
        self._responses: List[tuple] = []
        self._cursors: Dict[int, int] = {}
        self._call_history: List[RemoteCall] = []
        self._default_response = RemoteResponse(
            stderr="bash: mock not configured for this command",
            exit_code=127,
        )

    def register(
        self,
        pattern: Union[str, Pattern],
        response: ResponseSpec,
        priority: int = 0,
    ) -> "RemoteMocker":
        """
        Register a response for commands matching the pattern.

        Args:
            pattern: String (substring match) or regex pattern
            response: Response, exception, or ordered list of either
            priority: Higher priority patterns are checked first

        Returns:
            self for chaining
        """
        self._responses.append((pattern, response, priority))
        # Sort by priority (highest first); stable for equal priorities
        self._responses.sort(key=lambda x: x[2], reverse=True)
        return self

    def register_scenario(self, scenario_name: str) -> "RemoteMocker":
        """Register all responses for a named scenario from fixtures."""
        from fixtures.kubectl_scenarios import SCENARIOS

        if scenario_name not in SCENARIOS:
            raise ValueError(
                f"Unknown scenario: {scenario_name}. "
                f"Available: {list(SCENARIOS.keys())}"
            )

        for pattern, response in SCENARIOS[scenario_name].items():
            self.register(pattern, response)

        return self

    def set_default_response(self, response: RemoteResponse) -> "RemoteMocker":
        """Set the default response for unmatched commands."""
        self._default_response = response
        return self

    def _pick(self, spec: ResponseSpec):
        if not isinstance(spec, list):
            return spec
        key = id(spec)
        index = self._cursors.get(key, 0)
        self._cursors[key] = index + 1
        return spec[min(index, len(spec) - 1)]

    def respond(self, address: str, command: str) -> CommandOutput:
        matched_pattern = None
        response: Union[RemoteResponse, Exception] = self._default_response

        for pattern, spec, _ in self._responses:
            if isinstance(pattern, str):
                if pattern in command:
                    matched_pattern = pattern
                    response = self._pick(spec)
                    break
            elif pattern.search(command):
                matched_pattern = pattern.pattern
                response = self._pick(spec)
                break

        self._call_history.append(
            RemoteCall(
                address=address,
                command=command,
                matched_pattern=matched_pattern,
                response=None if isinstance(response, Exception) else response,
            )
        )

        if isinstance(response, Exception):
            raise response
        return response.to_output(command)

    @property
    def calls(self) -> List[RemoteCall]:
        """Get all commands executed during the test."""
        return self._call_history

    @property
    def commands(self) -> List[str]:
        return [call.command for call in self._call_history]

    @property
    def call_count(self) -> int:
        return len(self._call_history)

    def was_called_with(self, pattern: str) -> bool:
        """Check if any command contained the given pattern."""
        return any(pattern in call.command for call in self._call_history)

    def get_calls_matching(self, pattern: str) -> List[RemoteCall]:
        """Get all calls containing the given pattern."""
        return [c for c in self._call_history if pattern in c.command]

    def reset(self):
        """Clear call history (but keep registered responses)."""
        self._call_history = []
        self._cursors = {}


class FakeSession:
    """Session double that answers commands from a RemoteMocker."""

    def __init__(self, node: NodeDescriptor, mocker: RemoteMocker):
        self.node = node
        self.mocker = mocker
        self.closed = False

    async def exec(self, command: str) -> CommandOutput:
        if self.closed:
            raise RuntimeError("exec on closed session")
        return self.mocker.respond(self.node.address, command)

    async def close(self) -> None:
        self.closed = True


class FakeSessionFactory:
    """
    SessionFactory double.

    open() yields FakeSessions and records every session so tests can assert
    that each one was closed. Addresses listed in `failures` raise instead.
    """

    def __init__(self, mocker: RemoteMocker):
        self.mocker = mocker
        self.sessions: List[FakeSession] = []
        self.failures: Dict[str, Exception] = {}

    @asynccontextmanager
    async def open(self, node: NodeDescriptor):
        if node.address in self.failures:
            raise self.failures[node.address]
        session = FakeSession(node, self.mocker)
        self.sessions.append(session)
        try:
            yield session
        finally:
            await session.close()

    @property
    def all_closed(self) -> bool:
        return all(session.closed for session in self.sessions)


@pytest.fixture
def remote_mocker():
    """Fixture that provides an empty RemoteMocker."""
    return RemoteMocker()


@pytest.fixture
def session_factory(remote_mocker):
    """FakeSessionFactory wired to the test's RemoteMocker."""
    return FakeSessionFactory(remote_mocker)


@pytest.fixture
def node():
    return NodeDescriptor(address="10.0.0.5", ssh_user="ops", name="gpu-01")


@pytest.fixture
def fake_sleep():
    """Replacement for asyncio.sleep that records intervals and returns immediately."""
    return AsyncMock(return_value=None)


# =============================================================================
# Redis Mocking Infrastructure
# =============================================================================

@pytest.fixture
def mock_redis_with_data():
    """
    Redis mock with in-memory data storage for reservation tests.

    Supports SET with NX/EX, DELETE and SCAN_ITER.
    """
    storage = {}

    redis = AsyncMock()

    async def mock_set(key, value, nx=False, ex=None, **kwargs):
        if nx and key in storage:
            return None
        storage[key] = value
        return True

    async def mock_delete(*keys):
        count = 0
        for key in keys:
            if key in storage:
                del storage[key]
                count += 1
        return count

    async def mock_scan_iter(match=None, **kwargs):
        import fnmatch
        for key in list(storage.keys()):
            if match is None or fnmatch.fnmatch(key, match):
                yield key

    redis.set = mock_set
    redis.delete = mock_delete
    redis.scan_iter = mock_scan_iter
    redis._storage = storage  # Expose for test assertions

    return redis


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "remote_mock: Tests using the mocked remote shell"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests requiring real nodes"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
