"""Schemas returned by the token administration endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field

from tokenvault.models.oauth import TokenMetadata


class TokenMetadataResponse(BaseModel):
    """Non-secret view of a stored token."""

    subject_id: str
    provider: str
    site_id: Optional[str] = None
    subsite_id: Optional[str] = None
    environment: Optional[str] = None
    expires_at: datetime
    is_valid: bool = Field(..., description="True while the access token is unexpired.")
    needs_refresh: bool = Field(
        ..., description="True when the access token expires within the refresh buffer."
    )
    key_version: int
    rotation_count: int
    last_accessed_at: Optional[datetime] = None
    last_refreshed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_metadata(
        cls, metadata: TokenMetadata, *, now: datetime, refresh_buffer: timedelta
    ) -> "TokenMetadataResponse":
        return cls(
            **metadata.model_dump(),
            is_valid=metadata.is_valid(now),
            needs_refresh=metadata.needs_refresh(now, refresh_buffer),
        )


class RotationResponse(BaseModel):
    """Outcome of re-encrypting a subject's tokens."""

    subject_id: str
    rotated: int
    key_version: int


__all__ = ["RotationResponse", "TokenMetadataResponse"]
