"""FastAPI application entry point for the provenance escrow service.

Lifecycle:
    1. Startup: Initialize logging, connect Redis when it backs the VC cache.
    2. Running: Serve the REST API.
    3. Shutdown: Close the prover client and Redis.

Run with:
    uvicorn provenance_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from provenance_escrow.config import get_settings
from provenance_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        chain_id=settings.chain_id,
        prover=settings.prover_type,
    )

    from provenance_escrow.infrastructure.redis_client import close_redis, init_redis

    if settings.vc_cache_backend == "redis":
        try:
            init_redis()
        except Exception as exc:
            logger.warning("app.redis_unavailable", error=str(exc))

    from provenance_escrow.api.deps import get_content_store, get_verifier

    get_content_store.cache_clear()
    get_content_store()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    logger.info("app.shutting_down")
    backend = get_verifier().backend
    close = getattr(backend, "close", None)
    if callable(close):
        close()
    get_content_store.cache_clear()
    close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Provenance Escrow",
        description=(
            "Escrow for seller, buyer and transporter with commitment-bound "
            "zero-knowledge price proofs."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    from provenance_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    from provenance_escrow.api.routes.health import router as health_router
    from provenance_escrow.api.routes.products import router as products_router
    from provenance_escrow.api.routes.vcs import router as vcs_router
    from provenance_escrow.api.routes.wallets import router as wallets_router
    from provenance_escrow.api.routes.zkp import router as zkp_router

    app.include_router(health_router)
    app.include_router(products_router)
    app.include_router(zkp_router)
    app.include_router(vcs_router)
    app.include_router(wallets_router)

    return app


# The app instance used by Uvicorn
app = create_app()
