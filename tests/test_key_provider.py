try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from tokenvault.core.config import SecuritySettings
from tokenvault.core.errors import CryptoError
from tokenvault.services.key_provider import StaticKeyProvider, derive_key

SECRET = "a-perfectly-reasonable-secret-of-40-chars!"


def test_derive_key_is_256_bits_and_version_bound() -> None:
    first = derive_key(SECRET, 1)
    second = derive_key(SECRET, 2)

    assert len(first) == 32
    assert first == derive_key(SECRET, 1)
    assert first != second


def test_derive_key_rejects_short_secret() -> None:
    with pytest.raises(CryptoError):
        derive_key("too-short", 1)


def test_provider_defaults_to_highest_version() -> None:
    provider = StaticKeyProvider({1: SECRET, 3: SECRET + "-three"})
    provider.init()

    assert provider.current_version() == 3
    assert provider.versions == (1, 3)
    assert provider.get_key() == provider.get_key(3)


def test_provider_honours_active_version() -> None:
    provider = StaticKeyProvider({1: SECRET, 2: SECRET + "-two"}, active_version=1)
    provider.init()

    assert provider.current_version() == 1
    assert provider.get_key(2) == derive_key(SECRET + "-two", 2)


def test_provider_rejects_active_version_without_secret() -> None:
    provider = StaticKeyProvider({1: SECRET}, active_version=2)

    with pytest.raises(CryptoError):
        provider.init()


def test_provider_requires_at_least_one_key() -> None:
    with pytest.raises(CryptoError):
        StaticKeyProvider({}).init()


def test_provider_unknown_version_is_crypto_error() -> None:
    provider = StaticKeyProvider({1: SECRET})
    provider.init()

    with pytest.raises(CryptoError):
        provider.get_key(7)


def test_provider_holds_no_keys_outside_init_close_window() -> None:
    provider = StaticKeyProvider({1: SECRET})

    with pytest.raises(CryptoError):
        provider.current_version()

    provider.init()
    assert provider.is_open
    provider.close()

    assert not provider.is_open
    with pytest.raises(CryptoError):
        provider.get_key(1)


def test_provider_from_settings_folds_single_secret() -> None:
    settings = SecuritySettings(
        token_encryption_secret=SECRET,
        token_encryption_keys={2: SECRET + "-two"},
    )
    provider = StaticKeyProvider.from_settings(settings)
    provider.init()

    assert provider.versions == (1, 2)
    assert provider.current_version() == 2
