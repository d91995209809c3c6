"""FastAPI application entry point for the work settlement service.

Lifecycle:
    1. Startup: Initialize logging, database, Redis, create tables (dev mode),
       start the charge expiry sweeper.
    2. Running: Serve the REST API at /api/v1/* on a single Uvicorn process.
    3. Shutdown: Stop the sweeper, close database and Redis connections.

Run with:
    uv run uvicorn work_settlement.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from work_settlement.config import get_settings
from work_settlement.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        platform_fee_rate=str(settings.platform_fee_rate),
    )

    # 2. Initialize database
    from work_settlement.infrastructure.database.engine import close_db, init_db

    await init_db()

    # 3. Initialize Redis (optional; only the sweeper lock uses it)
    from work_settlement.infrastructure.redis_client import close_redis, init_redis

    await init_redis()

    # 4. Start the expiry sweeper
    from work_settlement.orchestration.expiry_sweeper import ExpirySweeper

    sweeper = ExpirySweeper(settings.expiry_sweep_interval_seconds)
    if settings.expiry_sweep_enabled:
        sweeper.start()

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await sweeper.stop()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory - creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Work Settlement Service",
        description=(
            "Payment terms negotiation, dual-signature contracts, on-site "
            "check-in/check-out and split PIX settlement for rural work engagements."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from work_settlement.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from work_settlement.api.routes.engagements import router as engagements_router
    from work_settlement.api.routes.health import router as health_router
    from work_settlement.api.routes.settlement import router as settlement_router

    app.include_router(health_router)
    app.include_router(engagements_router)
    app.include_router(settlement_router)

    return app


# The app instance used by Uvicorn
app = create_app()
