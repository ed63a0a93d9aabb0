"""
Remote Module - Black Box Interface

Purpose: Authenticated shell sessions to nodes and command execution
Interface: SessionFactory.open(), CommandRunner.run(), CredentialResolver.resolve()
Hidden: paramiko specifics, worker threads, algorithm negotiation

Can be replaced with any transport offering an async exec(command).
"""

from .credentials import CredentialResolver, Credentials, get_credential_resolver
from .runner import CommandRunner, command_failed
from .session import CommandOutput, ConnectParams, RemoteSession, SessionFactory

__all__ = [
    "CommandOutput",
    "CommandRunner",
    "ConnectParams",
    "CredentialResolver",
    "Credentials",
    "RemoteSession",
    "SessionFactory",
    "command_failed",
    "get_credential_resolver",
]
