"""Operator tooling for the token encryption key ring.

Commands:

1. ``check`` loads ``AppSettings`` from the given ``.env`` file, derives every
   configured key version and reports which one is active. Key material is
   never printed.
2. ``generate`` prints a fresh random secret suitable for a new key version.
3. ``rotate`` re-encrypts one subject's stale tokens under the active key,
   using the configured store.

Example usages::

    # Confirm a newly added key version is picked up before deploying.
    python -m scripts.manage_keys check --env-file /opt/vault/.env

    # After activating version 2, sweep a company's tokens.
    python -m scripts.manage_keys rotate --env-file /opt/vault/.env \
        --subject company-123
"""

from __future__ import annotations

import argparse
import secrets
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from tokenvault.clients import DynamoDBClient, SQLiteStore, TokenStore
from tokenvault.core.config import AppSettings, _load_env_file
from tokenvault.core.errors import CryptoError, TokenVaultError
from tokenvault.services import SecureTokenStorage, StaticKeyProvider

EXIT_OK = 0
EXIT_VALIDATION_ERROR = 2
EXIT_KEY_ERROR = 4
EXIT_RUNTIME_ERROR = 5

_GENERATED_SECRET_BYTES = 48


def _load_settings(env_file: Path) -> AppSettings:
    """Load settings, letting values in ``env_file`` fill unset variables."""
    if not env_file.exists():
        raise FileNotFoundError(
            f"Environment file {env_file} does not exist. "
            "Ensure the path is correct or create it before running this tool."
        )
    _load_env_file(str(env_file))
    return AppSettings()


def _build_store(settings: AppSettings) -> TokenStore:
    if settings.storage.backend == "dynamodb":
        return DynamoDBClient(settings.storage)
    return SQLiteStore(settings.storage.sqlite_path)


def _check(settings: AppSettings) -> int:
    provider = StaticKeyProvider.from_settings(settings.security)
    provider.init()
    try:
        versions = ", ".join(str(version) for version in provider.versions)
        print(f"Key versions: {versions}")
        print(f"Active key version: {provider.current_version()}")
    finally:
        provider.close()
    return EXIT_OK


def _generate() -> int:
    print(secrets.token_urlsafe(_GENERATED_SECRET_BYTES))
    return EXIT_OK


def _rotate(settings: AppSettings, subject_id: str) -> int:
    storage = SecureTokenStorage(
        key_provider=StaticKeyProvider.from_settings(settings.security),
        store=_build_store(settings),
    )
    with storage:
        rotated = storage.rotate_subject(subject_id)
        print(
            f"Re-encrypted {rotated} token(s) for {subject_id} "
            f"under key version {storage.current_key_version()}."
        )
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Validate, generate and rotate token encryption keys."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_env_argument(subparser: argparse.ArgumentParser) -> None:
        subparser.add_argument(
            "--env-file",
            default=".env",
            type=Path,
            help="Path to the environment file (default: .env in the repo root).",
        )

    check_parser = subparsers.add_parser(
        "check", help="Derive every configured key version and report the active one."
    )
    add_env_argument(check_parser)

    subparsers.add_parser("generate", help="Print a new random key secret.")

    rotate_parser = subparsers.add_parser(
        "rotate", help="Re-encrypt a subject's stale tokens under the active key."
    )
    add_env_argument(rotate_parser)
    rotate_parser.add_argument(
        "--subject",
        required=True,
        help="Subject (company or user) identifier whose tokens are rotated.",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    command: str = args.command
    if command == "generate":
        return _generate()

    try:
        settings = _load_settings(args.env_file)
        handlers: dict[str, Callable[[], int]] = {
            "check": lambda: _check(settings),
            "rotate": lambda: _rotate(settings, args.subject),
        }
        return handlers[command]()
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_RUNTIME_ERROR
    except ValidationError as exc:
        print(
            "Settings validation failed. Missing or invalid values detected:\n"
            f"{exc.json(indent=2)}",
            file=sys.stderr,
        )
        return EXIT_VALIDATION_ERROR
    except CryptoError as exc:
        print(f"Key ring error: {exc}", file=sys.stderr)
        return EXIT_KEY_ERROR
    except TokenVaultError as exc:
        print(f"Token operation failed: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR


if __name__ == "__main__":  # pragma: no cover - script entry point
    sys.exit(main())
