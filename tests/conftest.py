"""
Pytest configuration and fixtures for inventory tests.
"""
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RESERVATION_SWEEP_ENABLED"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("USE_VARIANT_LABEL", None)

from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from shopadmin.core.cache import InventoryCache, MemoryCacheBackend  # noqa: E402
from shopadmin.core.database import Base  # noqa: E402
from shopadmin.core.feature_flags import FeatureFlagGate  # noqa: E402
from shopadmin.models import Product, ProductVariant  # noqa: E402

PRODUCT_ID = "prod-1"


class FakeClock:
    """Controllable UTC clock for expiry tests."""

    def __init__(self, start: datetime = None):
        self.current = start or datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def flag_gate() -> FeatureFlagGate:
    """Gate isolated from the process environment (override always set)."""
    gate = FeatureFlagGate(env_var="SHOPADMIN_TEST_UNUSED_FLAG", default=False)
    gate.set_override(False)
    return gate


@pytest.fixture
def memory_cache() -> InventoryCache:
    return InventoryCache(MemoryCacheBackend(max_size=100), default_ttl=30)


@pytest_asyncio.fixture
async def session_factory():
    """In-memory SQLite database with all tables, one per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory

    await engine.dispose()


async def seed_catalog(factory):
    """
    One product with two labelled variants:
        var-small  "Small - Blue"   inventory 10
        var-medium "Medium - Blue"  inventory 15
    """
    async with factory() as db:
        async with db.begin():
            product = Product(
                id=PRODUCT_ID,
                name="Classic Tee",
                low_stock_threshold=5,
                allow_backorder=False,
            )
            product.variants = [
                ProductVariant(
                    variant_id="var-small",
                    label="Small - Blue",
                    inventory=10,
                    price=Decimal("19.99"),
                    position=0,
                ),
                ProductVariant(
                    variant_id="var-medium",
                    label="Medium - Blue",
                    inventory=15,
                    price=Decimal("21.99"),
                    position=1,
                ),
            ]
            db.add(product)


@pytest_asyncio.fixture
async def seeded_factory(session_factory):
    await seed_catalog(session_factory)
    return session_factory


@pytest_asyncio.fixture
async def locking_factory(tmp_path):
    """
    File-backed SQLite where every transaction starts with BEGIN IMMEDIATE.

    Each session gets its own connection and a second writer blocks until
    the first commits, which gives the same serialization as the variant
    row lock on Postgres.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'inventory.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await seed_catalog(factory)
    yield factory

    await engine.dispose()
