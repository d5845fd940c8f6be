"""
Error taxonomy for encrypted token storage.

Every failure surfaced by the vault derives from ``TokenVaultError`` so callers
can catch the family while still branching on the specific condition.
"""

from __future__ import annotations


class TokenVaultError(Exception):
    """Base class for all token vault failures."""


class CryptoError(TokenVaultError):
    """Raised when key material or an encryption precondition is invalid."""


class AuthenticationFailure(TokenVaultError):
    """Raised when a ciphertext fails its integrity check."""


class MalformedRecord(TokenVaultError):
    """Raised when stored data does not match any known schema version."""


class NotFound(TokenVaultError):
    """Raised when no token is stored for the requested locator."""


class ConcurrentModification(TokenVaultError):
    """Raised when a write loses an optimistic-concurrency race."""


class NotInitialized(TokenVaultError):
    """Raised when the storage is used before ``initialize()`` or after ``close()``."""


class InvalidLocator(TokenVaultError, ValueError):
    """Raised when a subject, provider or scope segment cannot address a record."""


__all__ = [
    "AuthenticationFailure",
    "ConcurrentModification",
    "CryptoError",
    "InvalidLocator",
    "MalformedRecord",
    "NotFound",
    "NotInitialized",
    "TokenVaultError",
]
