"""Versioned symmetric keys for token encryption."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Protocol

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from tokenvault.core.config import SecuritySettings
from tokenvault.core.errors import CryptoError

logger = logging.getLogger(__name__)

KEY_LENGTH_BYTES = 32
MIN_SECRET_LENGTH = 32

_KDF_SALT = b"tokenvault.oauth-token-key"


class KeyProvider(Protocol):
    """Capability the storage needs from the host's key management."""

    def init(self) -> None: ...

    def close(self) -> None: ...

    def current_version(self) -> int: ...

    def get_key(self, version: Optional[int] = None) -> bytes: ...


def derive_key(secret: str, version: int) -> bytes:
    """Derive a 256-bit AES key from a configured secret.

    The version is bound into the HKDF ``info`` so two versions configured with
    the same secret still produce different keys.
    """
    if len(secret) < MIN_SECRET_LENGTH:
        raise CryptoError(
            f"Encryption secret for key version {version} must be at least "
            f"{MIN_SECRET_LENGTH} characters."
        )
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH_BYTES,
        salt=_KDF_SALT,
        info=f"key-version:{version}".encode("utf-8"),
    )
    return hkdf.derive(secret.encode("utf-8"))


class StaticKeyProvider:
    """Key ring built from secrets supplied by configuration or a secret manager.

    Keys are derived in ``init()`` and dropped in ``close()``; nothing is held
    before or after that window.
    """

    def __init__(
        self,
        secrets: Mapping[int, str],
        *,
        active_version: Optional[int] = None,
    ) -> None:
        self._secrets = dict(secrets)
        self._active_version = active_version
        self._keys: Dict[int, bytes] = {}
        self._current: Optional[int] = None

    @classmethod
    def from_settings(cls, settings: SecuritySettings) -> "StaticKeyProvider":
        return cls(settings.key_secrets(), active_version=settings.active_key_version)

    @property
    def is_open(self) -> bool:
        return self._current is not None

    @property
    def versions(self) -> tuple[int, ...]:
        return tuple(sorted(self._keys))

    def init(self) -> None:
        if self.is_open:
            return
        if not self._secrets:
            raise CryptoError("No token encryption keys are configured.")
        for version in self._secrets:
            if not isinstance(version, int) or version < 1:
                raise CryptoError(f"Invalid key version {version!r}.")

        current = self._active_version or max(self._secrets)
        if current not in self._secrets:
            raise CryptoError(f"Active key version {current} has no configured secret.")

        keys = {
            version: derive_key(secret, version)
            for version, secret in self._secrets.items()
        }
        self._keys = keys
        self._current = current
        logger.info(
            "Token key ring ready (versions=%s, active=%s)",
            ",".join(str(v) for v in sorted(keys)),
            current,
        )

    def close(self) -> None:
        self._keys = {}
        self._current = None

    def current_version(self) -> int:
        if self._current is None:
            raise CryptoError("Key provider is not initialized.")
        return self._current

    def get_key(self, version: Optional[int] = None) -> bytes:
        resolved = self.current_version() if version is None else version
        key = self._keys.get(resolved)
        if key is None:
            raise CryptoError(f"Key version {resolved} is not available.")
        return key


__all__ = [
    "KEY_LENGTH_BYTES",
    "KeyProvider",
    "MIN_SECRET_LENGTH",
    "StaticKeyProvider",
    "derive_key",
]
