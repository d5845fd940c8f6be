"""Authenticated symmetric encryption for protecting stored tokens."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from tokenvault.core.errors import AuthenticationFailure, CryptoError

NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32
MAX_PLAINTEXT_BYTES = 64 * 1024


@dataclass(frozen=True, slots=True)
class SealedPayload:
    """Output of a single AES-GCM encryption."""

    ciphertext: bytes
    nonce: bytes
    auth_tag: bytes


class TokenCipherService:
    """Encrypt and decrypt token payloads with AES-256-GCM."""

    def encrypt(
        self,
        plaintext: bytes,
        key: bytes,
        associated_data: Optional[bytes] = None,
    ) -> SealedPayload:
        """Encrypt ``plaintext`` under ``key`` with a fresh random nonce."""
        aead = self._aead(key)
        if not isinstance(plaintext, (bytes, bytearray)):
            raise CryptoError("Plaintext must be bytes.")
        if len(plaintext) > MAX_PLAINTEXT_BYTES:
            raise CryptoError(
                f"Plaintext exceeds the {MAX_PLAINTEXT_BYTES} byte limit."
            )

        nonce = os.urandom(NONCE_LENGTH)
        sealed = aead.encrypt(nonce, bytes(plaintext), associated_data)
        return SealedPayload(
            ciphertext=sealed[:-TAG_LENGTH],
            nonce=nonce,
            auth_tag=sealed[-TAG_LENGTH:],
        )

    def decrypt(
        self,
        ciphertext: bytes,
        nonce: bytes,
        auth_tag: bytes,
        key: bytes,
        associated_data: Optional[bytes] = None,
    ) -> bytes:
        """Verify and decrypt a payload produced by :meth:`encrypt`."""
        aead = self._aead(key)
        # Length problems and tag mismatches share one exception and message.
        if len(nonce) != NONCE_LENGTH or len(auth_tag) != TAG_LENGTH:
            raise AuthenticationFailure("Token ciphertext failed authentication.")
        try:
            return aead.decrypt(nonce, bytes(ciphertext) + bytes(auth_tag), associated_data)
        except InvalidTag as exc:
            raise AuthenticationFailure(
                "Token ciphertext failed authentication."
            ) from exc

    @staticmethod
    def _aead(key: bytes) -> AESGCM:
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
            raise CryptoError("Encryption key must be exactly 256 bits.")
        return AESGCM(bytes(key))


__all__ = [
    "MAX_PLAINTEXT_BYTES",
    "NONCE_LENGTH",
    "SealedPayload",
    "TAG_LENGTH",
    "TokenCipherService",
]
