"""
Credential resolution for node sessions.

The shared remote-access secret is resolved once per resolver and cached,
including the "no key available" outcome.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from nodepilot.config import SSHConfig, get_config_provider

logger = logging.getLogger("nodepilot.remote.credentials")


@dataclass(frozen=True)
class Credentials:
    """Resolved authentication material. Values never appear in reprs."""

    private_key: Optional[str] = field(default=None, repr=False)
    passphrase: Optional[str] = field(default=None, repr=False)
    password: Optional[str] = field(default=None, repr=False)

    @property
    def has_key(self) -> bool:
        return bool(self.private_key)

    @property
    def has_auth(self) -> bool:
        return bool(self.private_key or self.password)


class CredentialResolver:
    """
    Resolves key material from inline text, then a key file, then nothing.

    A key file that cannot be read is logged and treated as "no key"; the
    real failure, if any, surfaces when a session is opened.
    """

    def __init__(self, ssh_config: SSHConfig):
        self.ssh_config = ssh_config
        self._cached: Optional[Credentials] = None

    def resolve(self) -> Credentials:
        if self._cached is None:
            self._cached = Credentials(
                private_key=self._resolve_private_key(),
                passphrase=self.ssh_config.key_passphrase,
                password=self.ssh_config.password,
            )
        return self._cached

    def _resolve_private_key(self) -> Optional[str]:
        if self.ssh_config.inline_key:
            # Keys passed through env files often carry literal "\n" sequences
            return self.ssh_config.inline_key.replace("\\n", "\n")

        if not self.ssh_config.key_path:
            return None

        try:
            return Path(self.ssh_config.key_path).expanduser().read_text()
        except OSError as e:
            logger.error(f"Failed to read SSH private key {self.ssh_config.key_path}: {e}")
            return None


# Singleton instance
_instance: Optional[CredentialResolver] = None


def get_credential_resolver() -> CredentialResolver:
    """Get the process-wide credential resolver."""
    global _instance
    if _instance is None:
        _instance = CredentialResolver(get_config_provider().get_ssh_config())
    return _instance
