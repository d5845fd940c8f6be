"""
FastAPI application entrypoint for the token vault administration API.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from tokenvault.api.routes import router as api_router
from tokenvault.core.config import get_settings
from tokenvault.core.logging import configure_logging
from tokenvault.dependencies import shutdown_secure_token_storage


@asynccontextmanager
async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    shutdown_secure_token_storage()


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Token Vault",
        version="0.1.0",
        description="Administration API for encrypted OAuth token storage.",
        lifespan=_lifespan,
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
