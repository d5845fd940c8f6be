"""
FastAPI routes for administering stored OAuth tokens.

Only metadata ever leaves these endpoints; decrypted tokens stay inside the
services that call ``SecureTokenStorage.retrieve`` directly.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from tokenvault.core.errors import (
    ConcurrentModification,
    CryptoError,
    InvalidLocator,
    MalformedRecord,
    NotInitialized,
    TokenVaultError,
)
from tokenvault.dependencies import get_secure_token_storage
from tokenvault.models.oauth import TokenMetadata, utcnow
from tokenvault.schemas import RotationResponse, TokenMetadataResponse
from tokenvault.services import SecureTokenStorage

router = APIRouter()
logger = logging.getLogger(__name__)

StorageDependency = Annotated[SecureTokenStorage, Depends(get_secure_token_storage)]


def _http_error(exc: TokenVaultError) -> HTTPException:
    if isinstance(exc, InvalidLocator):
        return HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc))
    if isinstance(exc, MalformedRecord):
        logger.error("Stored token data is malformed: %s", exc)
        return HTTPException(
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            detail="Stored token data is malformed.",
        )
    if isinstance(exc, ConcurrentModification):
        return HTTPException(status_code=HTTPStatus.CONFLICT, detail=str(exc))
    if isinstance(exc, (CryptoError, NotInitialized)):
        logger.error("Token key material unavailable: %s", exc)
        return HTTPException(
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
            detail="Token encryption is unavailable.",
        )
    logger.error("Token operation failed: %s", exc)
    return HTTPException(
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
        detail="Token operation failed.",
    )


def _to_response(
    storage: SecureTokenStorage, metadata: TokenMetadata
) -> TokenMetadataResponse:
    return TokenMetadataResponse.from_metadata(
        metadata, now=utcnow(), refresh_buffer=storage.refresh_buffer
    )


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/tokens/{subject_id}", response_model=list[TokenMetadataResponse])
def list_subject_tokens(
    subject_id: str,
    storage: StorageDependency,
) -> list[TokenMetadataResponse]:
    """List metadata for every token stored for a subject."""
    try:
        tokens = storage.list_subject_tokens(subject_id)
    except TokenVaultError as exc:
        raise _http_error(exc) from exc
    return [_to_response(storage, metadata) for metadata in tokens]


@router.get("/tokens/{subject_id}/{provider}", response_model=TokenMetadataResponse)
def get_token_metadata(
    subject_id: str,
    provider: str,
    storage: StorageDependency,
    environment: Optional[str] = Query(default=None, description="sandbox or production."),
    site_id: Optional[str] = Query(default=None),
    subsite_id: Optional[str] = Query(default=None),
) -> TokenMetadataResponse:
    """Return the non-secret metadata of one stored token."""
    try:
        metadata = storage.get_metadata(
            subject_id,
            provider,
            site_id=site_id,
            subsite_id=subsite_id,
            environment=environment,
        )
    except TokenVaultError as exc:
        raise _http_error(exc) from exc
    if metadata is None:
        raise HTTPException(
            status_code=HTTPStatus.NOT_FOUND,
            detail=f"No {provider} token stored for {subject_id}.",
        )
    return _to_response(storage, metadata)


@router.delete(
    "/tokens/{subject_id}/{provider}", status_code=HTTPStatus.NO_CONTENT
)
def revoke_token(
    subject_id: str,
    provider: str,
    storage: StorageDependency,
    environment: Optional[str] = Query(default=None),
    site_id: Optional[str] = Query(default=None),
    subsite_id: Optional[str] = Query(default=None),
) -> Response:
    """Delete a stored token. Succeeds whether or not one existed."""
    try:
        storage.revoke(
            subject_id,
            provider,
            site_id=site_id,
            subsite_id=subsite_id,
            environment=environment,
        )
    except TokenVaultError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=HTTPStatus.NO_CONTENT)


@router.post("/tokens/{subject_id}/rotate", response_model=RotationResponse)
def rotate_subject_tokens(
    subject_id: str,
    storage: StorageDependency,
) -> RotationResponse:
    """Re-encrypt a subject's stale tokens under the active key version."""
    try:
        rotated = storage.rotate_subject(subject_id)
        key_version = storage.current_key_version()
    except TokenVaultError as exc:
        raise _http_error(exc) from exc
    return RotationResponse(
        subject_id=subject_id, rotated=rotated, key_version=key_version
    )


__all__ = ["router"]
