"""Persistence contract shared by the token item stores."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol


class ConditionalWriteError(Exception):
    """Raised when a revision-checked write finds a different stored revision."""


class TokenStore(Protocol):
    """Flat item store addressed by a partition key and a sort key."""

    def put_item(
        self, item: Dict[str, Any], *, expected_revision: Optional[int] = None
    ) -> None: ...

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]: ...

    def delete_item(self, *, partition_key: str, sort_key: str) -> None: ...

    def list_items_with_prefix(
        self, *, partition_key: str, sort_key_prefix: str
    ) -> list[Dict[str, Any]]: ...


__all__ = ["ConditionalWriteError", "TokenStore"]
