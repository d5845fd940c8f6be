"""
Domain models for encrypted OAuth token persistence.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tokenvault.core.errors import InvalidLocator

DEFAULT_REFRESH_BUFFER = timedelta(minutes=5)
ENVIRONMENTS = ("sandbox", "production")

_SEGMENT_SEPARATOR = "#"
_EMPTY_SEGMENT = "-"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class OAuthToken(BaseModel):
    """A decrypted OAuth credential pair. Lives in memory only."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., min_length=1, repr=False)
    refresh_token: str = Field(..., min_length=1, repr=False)
    expires_at: datetime
    scope: str = ""
    token_type: str = "bearer"
    obtained_at: datetime = Field(default_factory=utcnow)

    @field_validator("expires_at", "obtained_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @classmethod
    def from_grant(
        cls,
        access_token: str,
        refresh_token: str,
        expires_in: int,
        *,
        scope: str = "",
        token_type: str = "bearer",
        obtained_at: Optional[datetime] = None,
    ) -> "OAuthToken":
        """Build a token from a token-endpoint response that only reports ``expires_in``."""
        obtained = _as_utc(obtained_at) if obtained_at else utcnow()
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=obtained + timedelta(seconds=expires_in),
            scope=scope,
            token_type=token_type,
            obtained_at=obtained,
        )

    @property
    def expires_in(self) -> int:
        """Lifetime in seconds as granted, measured from ``obtained_at``."""
        return int((self.expires_at - self.obtained_at).total_seconds())

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or utcnow())


class EncryptedTokenRecord(BaseModel):
    """Authenticated ciphertext of a serialized ``OAuthToken``."""

    model_config = ConfigDict(frozen=True)

    ciphertext: bytes = Field(..., repr=False)
    nonce: bytes
    auth_tag: bytes
    key_version: int = Field(..., ge=1)
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _normalize_timezone(cls, value: datetime) -> datetime:
        return _as_utc(value)


class TokenMetadata(BaseModel):
    """Non-secret bookkeeping stored alongside each encrypted record."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    provider: str
    site_id: Optional[str] = None
    subsite_id: Optional[str] = None
    environment: Optional[Literal["sandbox", "production"]] = None
    expires_at: datetime
    key_version: int = Field(..., ge=1)
    rotation_count: int = Field(0, ge=0)
    last_accessed_at: Optional[datetime] = None
    last_refreshed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @field_validator(
        "expires_at",
        "last_accessed_at",
        "last_refreshed_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def _normalize_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return _as_utc(value)

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at > (now or utcnow())

    def needs_refresh(
        self,
        now: Optional[datetime] = None,
        buffer: timedelta = DEFAULT_REFRESH_BUFFER,
    ) -> bool:
        """True when less than ``buffer`` remains before the access token expires."""
        return self.expires_at - (now or utcnow()) < buffer

    @property
    def locator(self) -> "TokenLocator":
        return TokenLocator(
            subject_id=self.subject_id,
            provider=self.provider,
            site_id=self.site_id,
            subsite_id=self.subsite_id,
            environment=self.environment,
        )


@dataclass(frozen=True, slots=True)
class TokenLocator:
    """Addresses one stored token: a subject, a provider and an optional scope."""

    subject_id: str
    provider: str
    site_id: Optional[str] = None
    subsite_id: Optional[str] = None
    environment: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("subject_id", "provider"):
            _check_segment(name, getattr(self, name), required=True)
        for name in ("site_id", "subsite_id"):
            _check_segment(name, getattr(self, name), required=False)
        if self.environment not in (None, *ENVIRONMENTS):
            raise InvalidLocator(
                f"environment must be one of {', '.join(ENVIRONMENTS)}."
            )

    @property
    def partition_key(self) -> str:
        return subject_partition_key(self.subject_id)

    @property
    def sort_key(self) -> str:
        parts = [
            "oauth",
            self.provider,
            self.environment or _EMPTY_SEGMENT,
            self.site_id or _EMPTY_SEGMENT,
            self.subsite_id or _EMPTY_SEGMENT,
        ]
        return _SEGMENT_SEPARATOR.join(parts)

    def describe(self) -> str:
        """Log-safe label for the locator."""
        label = f"{self.provider} token for subject {self.subject_id}"
        if self.environment:
            label += f" ({self.environment})"
        return label


def subject_partition_key(subject_id: str) -> str:
    _check_segment("subject_id", subject_id, required=True)
    return f"subject{_SEGMENT_SEPARATOR}{subject_id}"


SORT_KEY_PREFIX = f"oauth{_SEGMENT_SEPARATOR}"


def _check_segment(name: str, value: Optional[str], *, required: bool) -> None:
    if value is None and not required:
        return
    if not value or not value.strip():
        raise InvalidLocator(f"{name} must be a non-empty string.")
    if _SEGMENT_SEPARATOR in value or value == _EMPTY_SEGMENT:
        raise InvalidLocator(
            f"{name} may not contain {_SEGMENT_SEPARATOR!r} or equal {_EMPTY_SEGMENT!r}."
        )


__all__ = [
    "DEFAULT_REFRESH_BUFFER",
    "ENVIRONMENTS",
    "EncryptedTokenRecord",
    "OAuthToken",
    "SORT_KEY_PREFIX",
    "TokenLocator",
    "TokenMetadata",
    "subject_partition_key",
    "utcnow",
]
