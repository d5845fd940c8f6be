"""
Factory functions to provide the shared store and token storage as FastAPI dependencies.
"""

from datetime import timedelta
from functools import lru_cache

from tokenvault.clients import DynamoDBClient, SQLiteStore, TokenStore
from tokenvault.core.config import get_settings
from tokenvault.services import SecureTokenStorage, StaticKeyProvider


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_token_store() -> TokenStore:
    """Provide the configured token item store."""
    settings = _settings()
    if settings.storage.backend == "dynamodb":
        return DynamoDBClient(settings.storage)
    return SQLiteStore(settings.storage.sqlite_path)


@lru_cache()
def get_key_provider() -> StaticKeyProvider:
    """Provide the key ring built from security settings."""
    return StaticKeyProvider.from_settings(_settings().security)


@lru_cache()
def get_secure_token_storage() -> SecureTokenStorage:
    """Provide an initialized token storage for the process."""
    settings = _settings()
    storage = SecureTokenStorage(
        key_provider=get_key_provider(),
        store=get_token_store(),
        refresh_buffer=timedelta(seconds=settings.tokens.refresh_buffer_seconds),
    )
    storage.initialize()
    return storage


def shutdown_secure_token_storage() -> None:
    """Close the process-wide storage if it was ever created."""
    if get_secure_token_storage.cache_info().currsize:
        get_secure_token_storage().close()
        get_secure_token_storage.cache_clear()


__all__ = [
    "get_key_provider",
    "get_secure_token_storage",
    "get_token_store",
    "shutdown_secure_token_storage",
]
