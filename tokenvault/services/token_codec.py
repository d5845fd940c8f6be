"""
Serialization of OAuth tokens and the documents persisted for them.

Token payloads are tagged with a schema version so that a reader never guesses
at a shape it does not understand: unknown or future versions, and payloads
with missing or extra fields, are rejected with ``MalformedRecord``.
"""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from tokenvault.core.errors import MalformedRecord
from tokenvault.models.oauth import (
    EncryptedTokenRecord,
    OAuthToken,
    TokenLocator,
    TokenMetadata,
)

CURRENT_SCHEMA_VERSION = 1
RECORD_DOCUMENT_VERSION = 1


class _TokenPayloadV1(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    access_token: str
    refresh_token: str
    expires_at: str
    scope: str
    token_type: str
    obtained_at: str


_PAYLOAD_SCHEMAS: Dict[int, Type[BaseModel]] = {
    1: _TokenPayloadV1,
}


def _isoformat(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _unb64(value: Any, field: str) -> bytes:
    if not isinstance(value, str):
        raise MalformedRecord(f"Field {field!r} must be a base64 string.")
    try:
        return base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise MalformedRecord(f"Field {field!r} is not valid base64.") from exc


def _as_int(value: Any, field: str) -> int:
    # DynamoDB hands numbers back as Decimal.
    if isinstance(value, bool):
        raise MalformedRecord(f"Field {field!r} must be an integer.")
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise MalformedRecord(f"Field {field!r} must be an integer.")
        return int(value)
    if isinstance(value, int):
        return value
    raise MalformedRecord(f"Field {field!r} must be an integer.")


class TokenRecordCodec:
    """Encode and decode tokens, records and metadata."""

    def serialize(self, token: OAuthToken) -> bytes:
        """Return the deterministic, schema-tagged encoding of ``token``."""
        payload = {
            "schema": CURRENT_SCHEMA_VERSION,
            "access_token": token.access_token,
            "refresh_token": token.refresh_token,
            "expires_at": _isoformat(token.expires_at),
            "scope": token.scope,
            "token_type": token.token_type,
            "obtained_at": _isoformat(token.obtained_at),
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def deserialize(self, data: bytes) -> OAuthToken:
        """Parse bytes produced by :meth:`serialize` under any supported schema."""
        try:
            document = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise MalformedRecord("Token payload is not valid JSON.") from exc
        if not isinstance(document, dict):
            raise MalformedRecord("Token payload must be a JSON object.")

        version = document.pop("schema", None)
        if isinstance(version, bool) or not isinstance(version, int):
            raise MalformedRecord("Token payload is missing its schema version.")
        schema = _PAYLOAD_SCHEMAS.get(version)
        if schema is None:
            raise MalformedRecord(f"Unsupported token schema version {version}.")

        try:
            payload = schema.model_validate(document)
            return OAuthToken(
                access_token=payload.access_token,
                refresh_token=payload.refresh_token,
                expires_at=datetime.fromisoformat(payload.expires_at),
                scope=payload.scope,
                token_type=payload.token_type,
                obtained_at=datetime.fromisoformat(payload.obtained_at),
            )
        except (ValidationError, ValueError) as exc:
            raise MalformedRecord(
                f"Token payload does not match schema version {version}."
            ) from exc

    def encode_record(self, record: EncryptedTokenRecord) -> Dict[str, Any]:
        return {
            "format": RECORD_DOCUMENT_VERSION,
            "ciphertext": _b64(record.ciphertext),
            "nonce": _b64(record.nonce),
            "auth_tag": _b64(record.auth_tag),
            "key_version": record.key_version,
            "created_at": _isoformat(record.created_at),
            "updated_at": _isoformat(record.updated_at),
        }

    def decode_record(self, document: Any) -> EncryptedTokenRecord:
        if not isinstance(document, Mapping):
            raise MalformedRecord("Encrypted record document is missing.")
        try:
            version = _as_int(document["format"], "format")
            if version != RECORD_DOCUMENT_VERSION:
                raise MalformedRecord(f"Unsupported record format {version}.")
            return EncryptedTokenRecord(
                ciphertext=_unb64(document["ciphertext"], "ciphertext"),
                nonce=_unb64(document["nonce"], "nonce"),
                auth_tag=_unb64(document["auth_tag"], "auth_tag"),
                key_version=_as_int(document["key_version"], "key_version"),
                created_at=document["created_at"],
                updated_at=document["updated_at"],
            )
        except KeyError as exc:
            raise MalformedRecord(f"Encrypted record is missing {exc.args[0]!r}.") from exc
        except ValidationError as exc:
            raise MalformedRecord("Encrypted record failed validation.") from exc

    def encode_metadata(self, metadata: TokenMetadata) -> Dict[str, Any]:
        document: Dict[str, Any] = {
            "subject_id": metadata.subject_id,
            "provider": metadata.provider,
            "expires_at": _isoformat(metadata.expires_at),
            "key_version": metadata.key_version,
            "rotation_count": metadata.rotation_count,
            "created_at": _isoformat(metadata.created_at),
            "updated_at": _isoformat(metadata.updated_at),
        }
        optional = {
            "site_id": metadata.site_id,
            "subsite_id": metadata.subsite_id,
            "environment": metadata.environment,
            "last_accessed_at": metadata.last_accessed_at,
            "last_refreshed_at": metadata.last_refreshed_at,
        }
        for name, value in optional.items():
            if value is None:
                continue
            document[name] = _isoformat(value) if isinstance(value, datetime) else value
        return document

    def decode_metadata(self, document: Any) -> TokenMetadata:
        if not isinstance(document, Mapping):
            raise MalformedRecord("Token metadata document is missing.")
        data = dict(document)
        try:
            for name in ("key_version", "rotation_count"):
                if name in data:
                    data[name] = _as_int(data[name], name)
            return TokenMetadata.model_validate(data)
        except ValidationError as exc:
            raise MalformedRecord("Token metadata failed validation.") from exc

    def encode_item(
        self,
        locator: TokenLocator,
        record: EncryptedTokenRecord,
        metadata: TokenMetadata,
        *,
        revision: int,
    ) -> Dict[str, Any]:
        """Assemble the single persisted item holding record and metadata."""
        return {
            "pk": locator.partition_key,
            "sk": locator.sort_key,
            "revision": revision,
            "record": self.encode_record(record),
            "metadata": self.encode_metadata(metadata),
        }

    def decode_item(
        self, item: Mapping[str, Any]
    ) -> Tuple[EncryptedTokenRecord, TokenMetadata, int]:
        revision = _as_int(item.get("revision"), "revision")
        return (
            self.decode_record(item.get("record")),
            self.decode_metadata(item.get("metadata")),
            revision,
        )

    def decode_metadata_from_item(self, item: Mapping[str, Any]) -> TokenMetadata:
        return self.decode_metadata(item.get("metadata"))


def item_revision(item: Optional[Mapping[str, Any]]) -> int:
    """Revision of a stored item, ``0`` when absent."""
    if item is None:
        return 0
    return _as_int(item.get("revision"), "revision")


__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "TokenRecordCodec",
    "item_revision",
]
