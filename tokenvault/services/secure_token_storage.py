"""
Encrypted persistence for OAuth tokens.

Tokens are serialized, sealed with AES-256-GCM under the active key version and
written as one item that also carries the non-secret metadata. Plaintext only
ever exists in memory.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from tokenvault.clients.base import ConditionalWriteError, TokenStore
from tokenvault.core.errors import (
    AuthenticationFailure,
    ConcurrentModification,
    MalformedRecord,
    NotFound,
    NotInitialized,
)
from tokenvault.models.oauth import (
    DEFAULT_REFRESH_BUFFER,
    SORT_KEY_PREFIX,
    EncryptedTokenRecord,
    OAuthToken,
    TokenLocator,
    TokenMetadata,
    subject_partition_key,
    utcnow,
)
from tokenvault.services.key_provider import KeyProvider
from tokenvault.services.rotation import KeyRotationPolicy
from tokenvault.services.token_cipher import TokenCipherService
from tokenvault.services.token_codec import TokenRecordCodec, item_revision

logger = logging.getLogger(__name__)


class SecureTokenStorage:
    """Store, retrieve, refresh and revoke encrypted OAuth tokens."""

    def __init__(
        self,
        key_provider: KeyProvider,
        store: TokenStore,
        *,
        cipher: Optional[TokenCipherService] = None,
        codec: Optional[TokenRecordCodec] = None,
        rotation_policy: Optional[KeyRotationPolicy] = None,
        refresh_buffer: timedelta = DEFAULT_REFRESH_BUFFER,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._keys = key_provider
        self._store = store
        self._cipher = cipher or TokenCipherService()
        self._codec = codec or TokenRecordCodec()
        self._rotation = rotation_policy or KeyRotationPolicy(key_provider)
        self._refresh_buffer = refresh_buffer
        self._clock = clock
        self._initialized = False

    # Lifecycle -----------------------------------------------------------

    def initialize(self) -> None:
        self._keys.init()
        self._initialized = True

    def close(self) -> None:
        self._initialized = False
        self._keys.close()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def refresh_buffer(self) -> timedelta:
        return self._refresh_buffer

    def current_key_version(self) -> int:
        self._require_initialized()
        return self._rotation.current_key_version()

    def __enter__(self) -> "SecureTokenStorage":
        self.initialize()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # Token operations ----------------------------------------------------

    def store(
        self,
        subject_id: str,
        provider: str,
        token: OAuthToken,
        *,
        site_id: Optional[str] = None,
        subsite_id: Optional[str] = None,
        environment: Optional[str] = None,
    ) -> None:
        """Encrypt and persist ``token``, replacing any token already stored."""
        self._require_initialized()
        locator = TokenLocator(subject_id, provider, site_id, subsite_id, environment)
        existing = self._get(locator)

        previous: Optional[TokenMetadata] = None
        expected_revision: Optional[int] = 0
        if existing is not None:
            try:
                expected_revision = item_revision(existing)
                previous = self._codec.decode_metadata_from_item(existing)
            except MalformedRecord:
                logger.warning(
                    "Overwriting unreadable stored %s", locator.describe()
                )
                expected_revision = None
                previous = None

        now = self._clock()
        created_at = previous.created_at if previous else now
        record = self._seal(locator, token, created_at=created_at, updated_at=now)
        metadata = TokenMetadata(
            **_scope_fields(locator),
            expires_at=token.expires_at,
            key_version=record.key_version,
            rotation_count=previous.rotation_count if previous else 0,
            last_refreshed_at=previous.last_refreshed_at if previous else None,
            created_at=created_at,
            updated_at=now,
        )
        self._write(locator, record, metadata, expected_revision)
        logger.info(
            "Stored encrypted %s (key_version=%s)", locator.describe(), record.key_version
        )

    def retrieve(
        self,
        subject_id: str,
        provider: str,
        *,
        site_id: Optional[str] = None,
        subsite_id: Optional[str] = None,
        environment: Optional[str] = None,
    ) -> OAuthToken:
        """Decrypt the stored token, re-encrypting it if its key is stale."""
        self._require_initialized()
        locator = TokenLocator(subject_id, provider, site_id, subsite_id, environment)
        item = self._get(locator)
        if item is None:
            raise NotFound(f"No {locator.describe()} is stored.")

        record, metadata, revision = self._codec.decode_item(item)
        token = self._open(locator, record)

        now = self._clock()
        updates: Dict[str, Any] = {"last_accessed_at": now}
        if self._rotation.needs_rotation(record):
            previous_version = record.key_version
            record = self._seal(
                locator, token, created_at=record.created_at, updated_at=now
            )
            updates.update(key_version=record.key_version, updated_at=now)
            logger.info(
                "Re-encrypting %s from key_version=%s to %s",
                locator.describe(),
                previous_version,
                record.key_version,
            )

        try:
            self._write(locator, record, metadata.model_copy(update=updates), revision)
        except ConcurrentModification:
            # A concurrent writer replaced the item; the token read above is
            # still the one that was authenticated.
            logger.warning(
                "Skipped access stamp for %s after a concurrent write", locator.describe()
            )
        return token

    def refresh(
        self,
        subject_id: str,
        provider: str,
        new_token: OAuthToken,
        *,
        site_id: Optional[str] = None,
        subsite_id: Optional[str] = None,
        environment: Optional[str] = None,
    ) -> None:
        """Replace an existing token after the provider issued a new one."""
        self._require_initialized()
        locator = TokenLocator(subject_id, provider, site_id, subsite_id, environment)
        item = self._get(locator)
        if item is None:
            raise NotFound(f"No {locator.describe()} is stored to refresh.")

        revision = item_revision(item)
        previous = self._codec.decode_metadata_from_item(item)
        now = self._clock()
        record = self._seal(
            locator, new_token, created_at=previous.created_at, updated_at=now
        )
        metadata = previous.model_copy(
            update={
                "expires_at": new_token.expires_at,
                "key_version": record.key_version,
                "rotation_count": previous.rotation_count + 1,
                "last_refreshed_at": now,
                "updated_at": now,
            }
        )
        self._write(locator, record, metadata, revision)
        logger.info(
            "Refreshed encrypted %s (rotation_count=%s)",
            locator.describe(),
            metadata.rotation_count,
        )

    def revoke(
        self,
        subject_id: str,
        provider: str,
        *,
        site_id: Optional[str] = None,
        subsite_id: Optional[str] = None,
        environment: Optional[str] = None,
    ) -> None:
        """Delete the stored token. Revoking an absent token is a no-op."""
        locator = TokenLocator(subject_id, provider, site_id, subsite_id, environment)
        self._store.delete_item(
            partition_key=locator.partition_key, sort_key=locator.sort_key
        )
        logger.info("Revoked %s", locator.describe())

    # Metadata queries ----------------------------------------------------

    def get_metadata(
        self,
        subject_id: str,
        provider: str,
        *,
        site_id: Optional[str] = None,
        subsite_id: Optional[str] = None,
        environment: Optional[str] = None,
    ) -> Optional[TokenMetadata]:
        """Return the stored metadata without touching key material."""
        locator = TokenLocator(subject_id, provider, site_id, subsite_id, environment)
        item = self._get(locator)
        if item is None:
            return None
        return self._codec.decode_metadata_from_item(item)

    def has_valid_token(self, subject_id: str, provider: str, **scope: Optional[str]) -> bool:
        metadata = self.get_metadata(subject_id, provider, **scope)
        return metadata is not None and metadata.is_valid(self._clock())

    def needs_refresh(self, subject_id: str, provider: str, **scope: Optional[str]) -> bool:
        metadata = self.get_metadata(subject_id, provider, **scope)
        return metadata is not None and metadata.needs_refresh(
            self._clock(), self._refresh_buffer
        )

    def list_subject_tokens(self, subject_id: str) -> list[TokenMetadata]:
        """Metadata for every token stored under ``subject_id``."""
        items = self._store.list_items_with_prefix(
            partition_key=subject_partition_key(subject_id),
            sort_key_prefix=SORT_KEY_PREFIX,
        )
        return [self._codec.decode_metadata_from_item(item) for item in items]

    def rotate_subject(self, subject_id: str) -> int:
        """Re-encrypt every stale token of ``subject_id`` under the active key.

        Returns the number of records rewritten. Records that lose a write race
        are left to the concurrent writer and not counted.
        """
        self._require_initialized()
        items = self._store.list_items_with_prefix(
            partition_key=subject_partition_key(subject_id),
            sort_key_prefix=SORT_KEY_PREFIX,
        )
        rotated = 0
        for item in items:
            record, metadata, revision = self._codec.decode_item(item)
            if not self._rotation.needs_rotation(record):
                continue
            locator = metadata.locator
            token = self._open(locator, record)
            now = self._clock()
            new_record = self._seal(
                locator, token, created_at=record.created_at, updated_at=now
            )
            new_metadata = metadata.model_copy(
                update={"key_version": new_record.key_version, "updated_at": now}
            )
            try:
                self._write(locator, new_record, new_metadata, revision)
            except ConcurrentModification:
                logger.warning(
                    "Skipped rotation of %s after a concurrent write", locator.describe()
                )
                continue
            rotated += 1

        logger.info(
            "Rotated %s token(s) for subject %s to key_version=%s",
            rotated,
            subject_id,
            self._rotation.current_key_version(),
        )
        return rotated

    # Internals -----------------------------------------------------------

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitialized(
                "SecureTokenStorage is not initialized. Call initialize() first."
            )

    def _get(self, locator: TokenLocator) -> Optional[Mapping[str, Any]]:
        return self._store.get_item(
            partition_key=locator.partition_key, sort_key=locator.sort_key
        )

    @staticmethod
    def _associated_data(locator: TokenLocator, key_version: int) -> bytes:
        return f"{locator.partition_key}|{locator.sort_key}|{key_version}".encode("utf-8")

    def _seal(
        self,
        locator: TokenLocator,
        token: OAuthToken,
        *,
        created_at: datetime,
        updated_at: datetime,
    ) -> EncryptedTokenRecord:
        key_version = self._rotation.current_key_version()
        sealed = self._cipher.encrypt(
            self._codec.serialize(token),
            self._keys.get_key(key_version),
            self._associated_data(locator, key_version),
        )
        return EncryptedTokenRecord(
            ciphertext=sealed.ciphertext,
            nonce=sealed.nonce,
            auth_tag=sealed.auth_tag,
            key_version=key_version,
            created_at=created_at,
            updated_at=updated_at,
        )

    def _open(self, locator: TokenLocator, record: EncryptedTokenRecord) -> OAuthToken:
        key = self._keys.get_key(record.key_version)
        try:
            plaintext = self._cipher.decrypt(
                record.ciphertext,
                record.nonce,
                record.auth_tag,
                key,
                self._associated_data(locator, record.key_version),
            )
        except AuthenticationFailure:
            logger.warning(
                "Authentication failure decrypting %s (key_version=%s)",
                locator.describe(),
                record.key_version,
            )
            raise
        return self._codec.deserialize(plaintext)

    def _write(
        self,
        locator: TokenLocator,
        record: EncryptedTokenRecord,
        metadata: TokenMetadata,
        expected_revision: Optional[int],
    ) -> None:
        revision = (expected_revision or 0) + 1
        item = self._codec.encode_item(locator, record, metadata, revision=revision)
        try:
            self._store.put_item(item, expected_revision=expected_revision)
        except ConditionalWriteError as exc:
            raise ConcurrentModification(
                f"{locator.describe()} was modified concurrently; re-read and retry."
            ) from exc


def _scope_fields(locator: TokenLocator) -> Dict[str, Optional[str]]:
    return {
        "subject_id": locator.subject_id,
        "provider": locator.provider,
        "site_id": locator.site_id,
        "subsite_id": locator.subsite_id,
        "environment": locator.environment,
    }


__all__ = ["SecureTokenStorage"]
