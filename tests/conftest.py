"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timedelta, timezone

import pytest

from tokenvault.clients import SQLiteStore
from tokenvault.models.oauth import OAuthToken
from tokenvault.services import SecureTokenStorage, StaticKeyProvider

SECRET_V1 = "first-secret-for-token-vault-tests-0001"
SECRET_V2 = "second-secret-for-token-vault-tests-0002"


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def sqlite_store(tmp_path) -> SQLiteStore:
    return SQLiteStore(str(tmp_path / "tokens.db"))


@pytest.fixture
def key_provider() -> StaticKeyProvider:
    return StaticKeyProvider({1: SECRET_V1})


@pytest.fixture
def storage(key_provider, sqlite_store):
    token_storage = SecureTokenStorage(key_provider=key_provider, store=sqlite_store)
    token_storage.initialize()
    yield token_storage
    token_storage.close()


@pytest.fixture
def make_token():
    def _make(
        access_token: str = "access-token-A",
        refresh_token: str = "refresh-token-A",
        expires_in: int = 3600,
        scope: str = "read:vat write:vat",
    ) -> OAuthToken:
        return OAuthToken.from_grant(
            access_token,
            refresh_token,
            expires_in,
            scope=scope,
            obtained_at=datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)
            + timedelta(microseconds=123),
        )

    return _make
