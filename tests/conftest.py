# tests/conftest.py
from decimal import Decimal

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.core.config import Settings
from app.core.enums import ChannelName
from app.database import Base, build_sessionmaker
from app.main import build_coordinator, create_app
from app.models import InventoryAuditLog, Product, ProductVariant
from app.services.inventory_ledger import InventoryLedger
from app.services.reconciliation_engine import ReconciliationEngine
from tests.mocks.mock_channel import MockChannel

# In-memory SQLite shared by every session of a test through StaticPool
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        CHANNEL_TIMEOUT_SECONDS=2.0,
        AUTO_SYNC_INTERVAL_MINUTES=0,
        LOW_STOCK_THRESHOLD=3,
    )


@pytest.fixture
async def test_engine():
    """Create the schema on a fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_sessionmaker(test_engine)


@pytest.fixture
def ledger(session_factory):
    return InventoryLedger(session_factory)


@pytest.fixture
async def variant_ids(session_factory):
    """
    Seed one product with four variants and return {sku: variant_id}.

    A=10, B=5, C=0 (out of stock, never in the sync catalog), D=2.
    """
    async with session_factory() as session:
        async with session.begin():
            product = Product(name="Guitar Strings")
            session.add(product)
            await session.flush()

            variants = {
                sku: ProductVariant(
                    product_id=product.id,
                    sku=sku,
                    name=f"Gauge {sku}",
                    price=Decimal("5.00"),
                    inventory_quantity=qty,
                )
                for sku, qty in (("A", 10), ("B", 5), ("C", 0), ("D", 2))
            }
            session.add_all(variants.values())
            await session.flush()
            return {sku: variant.id for sku, variant in variants.items()}


@pytest.fixture
def read_quantity(session_factory):
    """Current inventory_quantity of a variant, read in a fresh session"""
    async def _read(variant_id):
        async with session_factory() as session:
            return await session.scalar(
                select(ProductVariant.inventory_quantity).where(ProductVariant.id == variant_id)
            )
    return _read


@pytest.fixture
def read_audit(session_factory):
    """All audit rows, oldest first"""
    async def _read(variant_id=None):
        async with session_factory() as session:
            stmt = select(InventoryAuditLog).order_by(InventoryAuditLog.id)
            if variant_id is not None:
                stmt = stmt.where(InventoryAuditLog.variant_id == variant_id)
            return (await session.execute(stmt)).scalars().all()
    return _read


@pytest.fixture
def amazon():
    return MockChannel(ChannelName.AMAZON)


@pytest.fixture
def etsy():
    return MockChannel(ChannelName.ETSY)


@pytest.fixture
def adapters(amazon, etsy):
    return {ChannelName.AMAZON: amazon, ChannelName.ETSY: etsy}


@pytest.fixture
def reconciliation_engine(ledger, adapters):
    return ReconciliationEngine(ledger, adapters, channel_timeout=2.0)


@pytest.fixture
def test_app(settings, session_factory, adapters):
    """
    App wired to the test database and mock channels.

    The state normally built by the lifespan is set up directly so requests
    run on the test's event loop.
    """
    app = create_app(settings=settings, session_factory=session_factory, adapters=adapters)
    coordinator = build_coordinator(settings, session_factory, adapters)
    app.state.settings = settings
    app.state.ledger = coordinator.engine.ledger
    app.state.coordinator = coordinator
    yield app
    coordinator.shutdown()


@pytest.fixture
async def api_client(test_app):
    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
