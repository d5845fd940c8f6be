try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from tokenvault.core.errors import MalformedRecord
from tokenvault.models.oauth import EncryptedTokenRecord, TokenMetadata
from tokenvault.services.token_codec import CURRENT_SCHEMA_VERSION, TokenRecordCodec

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _payload(codec: TokenRecordCodec, token) -> dict:
    return json.loads(codec.serialize(token))


def test_serialize_is_deterministic_and_tagged(make_token) -> None:
    codec = TokenRecordCodec()
    token = make_token()

    first = codec.serialize(token)
    second = codec.serialize(token)

    assert first == second
    assert json.loads(first)["schema"] == CURRENT_SCHEMA_VERSION


def test_deserialize_restores_token_exactly(make_token) -> None:
    codec = TokenRecordCodec()
    token = make_token()

    restored = codec.deserialize(codec.serialize(token))

    assert restored == token
    assert restored.expires_at.tzinfo is not None


def test_deserialize_rejects_future_schema(make_token) -> None:
    codec = TokenRecordCodec()
    payload = _payload(codec, make_token())
    payload["schema"] = CURRENT_SCHEMA_VERSION + 1

    with pytest.raises(MalformedRecord):
        codec.deserialize(json.dumps(payload).encode("utf-8"))


def test_deserialize_rejects_missing_schema(make_token) -> None:
    codec = TokenRecordCodec()
    payload = _payload(codec, make_token())
    del payload["schema"]

    with pytest.raises(MalformedRecord):
        codec.deserialize(json.dumps(payload).encode("utf-8"))


def test_deserialize_rejects_unknown_fields(make_token) -> None:
    codec = TokenRecordCodec()
    payload = _payload(codec, make_token())
    payload["id_token"] = "unexpected"

    with pytest.raises(MalformedRecord):
        codec.deserialize(json.dumps(payload).encode("utf-8"))


def test_deserialize_rejects_missing_fields(make_token) -> None:
    codec = TokenRecordCodec()
    payload = _payload(codec, make_token())
    del payload["refresh_token"]

    with pytest.raises(MalformedRecord):
        codec.deserialize(json.dumps(payload).encode("utf-8"))


def test_deserialize_rejects_coercible_types(make_token) -> None:
    codec = TokenRecordCodec()
    payload = _payload(codec, make_token())
    payload["scope"] = 42

    with pytest.raises(MalformedRecord):
        codec.deserialize(json.dumps(payload).encode("utf-8"))


@pytest.mark.parametrize("data", [b"", b"\xff\xfe", b"[1, 2]", b"not json"])
def test_deserialize_rejects_garbage(data: bytes) -> None:
    with pytest.raises(MalformedRecord):
        TokenRecordCodec().deserialize(data)


def test_record_document_accepts_dynamodb_decimals() -> None:
    codec = TokenRecordCodec()
    record = EncryptedTokenRecord(
        ciphertext=b"\x00\x01cipher",
        nonce=b"n" * 12,
        auth_tag=b"t" * 16,
        key_version=3,
        created_at=NOW,
        updated_at=NOW,
    )
    document = codec.encode_record(record)
    document["key_version"] = Decimal("3")
    document["format"] = Decimal("1")

    assert codec.decode_record(document) == record


@pytest.mark.parametrize(
    "mutation",
    [
        {"ciphertext": "***not base64***"},
        {"key_version": "3"},
        {"key_version": Decimal("3.5")},
        {"format": 99},
    ],
)
def test_record_document_rejects_bad_fields(mutation: dict) -> None:
    codec = TokenRecordCodec()
    record = EncryptedTokenRecord(
        ciphertext=b"cipher",
        nonce=b"n" * 12,
        auth_tag=b"t" * 16,
        key_version=3,
        created_at=NOW,
        updated_at=NOW,
    )
    document = {**codec.encode_record(record), **mutation}

    with pytest.raises(MalformedRecord):
        codec.decode_record(document)


def test_record_document_rejects_missing_field() -> None:
    with pytest.raises(MalformedRecord):
        TokenRecordCodec().decode_record({"format": 1, "nonce": ""})


def test_metadata_document_omits_unset_optionals() -> None:
    codec = TokenRecordCodec()
    metadata = TokenMetadata(
        subject_id="company-1",
        provider="hmrc",
        expires_at=NOW,
        key_version=1,
        created_at=NOW,
        updated_at=NOW,
    )

    document = codec.encode_metadata(metadata)

    assert "site_id" not in document
    assert "last_accessed_at" not in document
    assert codec.decode_metadata(document) == metadata


def test_metadata_document_rejects_unknown_environment() -> None:
    codec = TokenRecordCodec()
    document = {
        "subject_id": "company-1",
        "provider": "hmrc",
        "environment": "staging",
        "expires_at": NOW.isoformat(),
        "key_version": 1,
        "rotation_count": 0,
        "created_at": NOW.isoformat(),
        "updated_at": NOW.isoformat(),
    }

    with pytest.raises(MalformedRecord):
        codec.decode_metadata(document)
