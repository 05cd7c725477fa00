"""FastAPI application entry point for the picking verifier.

Lifecycle:
    1. Startup: Initialize logging.
    2. Running: Serve the order verification API, the OAuth flow, the live
       monitor stream and (when present) the static picking screen.
    3. Shutdown: Log the order that was still active, if any; the session is
       in-memory only and is lost with the process.

Run with:
    uv run uvicorn picking_verifier.main:app --reload --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from picking_verifier.config import get_settings
from picking_verifier.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx

    from picking_verifier.config import Settings
    from picking_verifier.domain.gateway_protocol import ErpGateway


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = app.state.settings

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.started",
        env=settings.app_env,
        host=settings.app_host,
        port=settings.app_port,
        verified_situation=settings.bling_situacao_verificado_id,
    )

    yield

    session = app.state.workflow.session
    logger.info("app.stopped", active_order=session.order_number)


def create_app(
    settings: Settings | None = None,
    gateway: ErpGateway | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Application factory — wires the workflow and mounts all routes.

    Args:
        settings: Override for the cached settings (tests).
        gateway: Override for the Bling adapter (tests).
        transport: httpx transport for every Bling call, token requests
            included (tests).
    """
    from picking_verifier.infrastructure.bling_auth import BlingTokenProvider, FileTokenStore
    from picking_verifier.infrastructure.bling_gateway import BlingGateway
    from picking_verifier.services.monitor_bus import MonitorBus
    from picking_verifier.services.verification_service import VerificationWorkflow

    settings = settings or get_settings()

    app = FastAPI(
        title="Picking Verifier",
        description="Scan-to-verify sales orders against Bling.",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Session wiring ---
    token_provider = BlingTokenProvider(
        FileTokenStore(settings.bling_token_path), settings, transport=transport
    )
    monitor_bus = MonitorBus(queue_size=settings.monitor_queue_size)
    app.state.settings = settings
    app.state.token_provider = token_provider
    app.state.monitor_bus = monitor_bus
    app.state.workflow = VerificationWorkflow(
        gateway=gateway or BlingGateway(token_provider, settings, transport=transport),
        bus=monitor_bus,
        verified_situation_id=settings.bling_situacao_verificado_id,
    )

    # --- Middleware ---
    from picking_verifier.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from picking_verifier.api.routes.health import router as health_router
    from picking_verifier.api.routes.monitor import router as monitor_router
    from picking_verifier.api.routes.oauth import router as oauth_router
    from picking_verifier.api.routes.orders import router as orders_router

    app.include_router(health_router)
    app.include_router(oauth_router)
    app.include_router(orders_router)
    app.include_router(monitor_router)

    # --- Picking screen (mounted last so API routes win) ---
    if Path(settings.static_dir).is_dir():
        app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return app


# The app instance used by Uvicorn
app = create_app()
