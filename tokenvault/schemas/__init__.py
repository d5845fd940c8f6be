"""Public schema exports."""

from .tokens import RotationResponse, TokenMetadataResponse

__all__ = [
    "RotationResponse",
    "TokenMetadataResponse",
]
