"""Service layer exports."""

from .key_provider import KeyProvider, StaticKeyProvider
from .rotation import KeyRotationPolicy
from .secure_token_storage import SecureTokenStorage
from .token_cipher import SealedPayload, TokenCipherService
from .token_codec import TokenRecordCodec

__all__ = [
    "KeyProvider",
    "KeyRotationPolicy",
    "SealedPayload",
    "SecureTokenStorage",
    "StaticKeyProvider",
    "TokenCipherService",
    "TokenRecordCodec",
]
