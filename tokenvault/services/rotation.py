"""Decide when a stored token must be re-encrypted under a newer key."""

from __future__ import annotations

from tokenvault.models.oauth import EncryptedTokenRecord
from tokenvault.services.key_provider import KeyProvider


class KeyRotationPolicy:
    """Lazy rotation: a record is stale once a newer key version is active."""

    def __init__(self, key_provider: KeyProvider) -> None:
        self._keys = key_provider

    def current_key_version(self) -> int:
        return self._keys.current_version()

    def needs_rotation(self, record: EncryptedTokenRecord) -> bool:
        return record.key_version < self.current_key_version()


__all__ = ["KeyRotationPolicy"]
