"""
Application configuration models and helpers.

Centralizes settings management so the admin API, the storage service and the
key maintenance scripts share a consistent configuration surface.
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal, Optional

import os

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


_BASE_CONFIG = SettingsConfigDict(
    env_file=".env",
    env_file_encoding="utf-8",
    extra="ignore",
    populate_by_name=True,
)


class SecuritySettings(BaseSettings):
    """Key material used to encrypt stored OAuth tokens."""

    model_config = _BASE_CONFIG

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description="Single secret used as key version 1 when no key ring is set.",
    )
    token_encryption_keys: Dict[int, str] = Field(
        default_factory=dict,
        validation_alias="TOKEN_ENCRYPTION_KEYS",
        description='JSON map of key version to secret, e.g. {"1": "...", "2": "..."}.',
    )
    active_key_version: Optional[int] = Field(
        None,
        validation_alias="TOKEN_ACTIVE_KEY_VERSION",
        description="Version used for new encryptions. Defaults to the highest version.",
    )

    @field_validator("token_encryption_keys")
    @classmethod
    def _positive_versions(cls, value: Dict[int, str]) -> Dict[int, str]:
        for version in value:
            if version < 1:
                raise ValueError("Key versions must be positive integers.")
        return value

    def key_secrets(self) -> Dict[int, str]:
        """Return the configured key ring, folding in the single-secret form."""
        secrets = dict(self.token_encryption_keys)
        if self.token_encryption_secret and 1 not in secrets:
            secrets[1] = self.token_encryption_secret
        return secrets


class StorageSettings(BaseSettings):
    """Persistence backend selection."""

    model_config = _BASE_CONFIG

    backend: Literal["sqlite", "dynamodb"] = Field(
        "sqlite", validation_alias="TOKEN_STORE_BACKEND"
    )
    sqlite_path: str = Field(
        "data/token_vault.db", validation_alias="TOKEN_STORE_SQLITE_PATH"
    )
    region_name: str = Field("eu-west-2", validation_alias="AWS_REGION")
    dynamodb_table_name: Optional[str] = Field(
        None, validation_alias="DYNAMODB_TABLE_NAME"
    )

    @model_validator(mode="after")
    def _require_table_for_dynamodb(self) -> "StorageSettings":
        if self.backend == "dynamodb" and not self.dynamodb_table_name:
            raise ValueError("DYNAMODB_TABLE_NAME is required for the dynamodb backend.")
        return self


class TokenPolicySettings(BaseSettings):
    """Expiry bookkeeping knobs."""

    model_config = _BASE_CONFIG

    refresh_buffer_seconds: int = Field(
        300,
        validation_alias="TOKEN_REFRESH_BUFFER_SECONDS",
        description="Tokens expiring within this window report needs_refresh.",
    )


class AppSettings(BaseSettings):
    """Root settings object for the token vault."""

    model_config = _BASE_CONFIG

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    tokens: TokenPolicySettings = Field(default_factory=TokenPolicySettings)


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()


__all__ = [
    "AppSettings",
    "SecuritySettings",
    "StorageSettings",
    "TokenPolicySettings",
    "get_settings",
]
