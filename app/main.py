# app/main.py

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import Settings, get_settings
from app.core.enums import ChannelName
from app.core.logging_config import configure_logging
from app.integrations.base import ChannelAdapter
from app.integrations.setup import build_channel_adapters
from app.routes import health, inventory, sync
from app.services.inventory_ledger import InventoryLedger
from app.services.order_ingestion import OrderIngestionService
from app.services.reconciliation_engine import ReconciliationEngine
from app.services.sync_coordinator import SyncCoordinator

logger = logging.getLogger(__name__)


def build_coordinator(
    settings: Settings,
    session_factory: async_sessionmaker,
    adapters: Dict[ChannelName, ChannelAdapter],
) -> SyncCoordinator:
    """Wire ledger, engine and ingestion into the one coordinator for this process"""
    ledger = InventoryLedger(session_factory)
    engine = ReconciliationEngine(
        ledger,
        adapters,
        channel_timeout=settings.CHANNEL_TIMEOUT_SECONDS,
        push_concurrency=settings.CHANNEL_PUSH_CONCURRENCY,
    )
    ingestor = OrderIngestionService(
        ledger,
        adapters,
        lookback_hours=settings.ORDER_LOOKBACK_HOURS,
        channel_timeout=settings.CHANNEL_TIMEOUT_SECONDS,
    )
    return SyncCoordinator(engine, ingestor, history_limit=settings.SYNC_HISTORY_LIMIT)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker] = None,
    adapters: Optional[Dict[ChannelName, ChannelAdapter]] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.LOG_LEVEL)

        factory = session_factory
        if factory is None:
            from app.database import async_session
            factory = async_session

        channel_adapters = adapters if adapters is not None else build_channel_adapters(settings)
        logger.info(f"Registered channels: {[c.value for c in channel_adapters]}")

        coordinator = build_coordinator(settings, factory, channel_adapters)
        app.state.settings = settings
        app.state.ledger = coordinator.engine.ledger
        app.state.coordinator = coordinator

        if settings.AUTO_SYNC_INTERVAL_MINUTES > 0:
            try:
                coordinator.schedule_recurring(settings.AUTO_SYNC_INTERVAL_MINUTES)
            except Exception as e:
                logger.error(f"Failed to start auto sync: {e}")

        try:
            yield  # This is where the app runs
        finally:
            coordinator.shutdown()

    app = FastAPI(
        title="Channel Inventory Sync",
        lifespan=lifespan,
    )

    # Add middleware to handle HTTPS behind proxy
    @app.middleware("http")
    async def proxy_headers_middleware(request: Request, call_next):
        forwarded_proto = request.headers.get("x-forwarded-proto")
        if forwarded_proto == "https":
            request.scope["scheme"] = "https"
        return await call_next(request)

    app.include_router(health.router)
    app.include_router(sync.router)
    app.include_router(inventory.router)

    return app


app = create_app()
