"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_key_provider,
    get_secure_token_storage,
    get_token_store,
    shutdown_secure_token_storage,
)

__all__ = [
    "get_key_provider",
    "get_secure_token_storage",
    "get_token_store",
    "shutdown_secure_token_storage",
]
