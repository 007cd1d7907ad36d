"""
Database engine and sessions

One async engine per process. The inventory ledger opens its own
transactions through AsyncSessionLocal; jobs and /health use
get_db_session().
"""
from contextlib import asynccontextmanager
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from shopadmin.core.config import settings


def engine_options(database_url: str, environment: str) -> Dict[str, Any]:
    """
    Pool sizing for the target database.

    SQLite (tests, local tooling) keeps the driver's own pool. Postgres gets
    the configured pool in production and a small one elsewhere.
    """
    if database_url.startswith("sqlite"):
        return {}
    if environment == "production":
        return {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_recycle": settings.DB_POOL_RECYCLE,
            "pool_pre_ping": True,
        }
    return {"pool_size": 2, "max_overflow": 5, "pool_pre_ping": True}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **engine_options(settings.DATABASE_URL, settings.ENVIRONMENT),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


@asynccontextmanager
async def get_db_session():
    """
    Session outside a request: commits on success, rolls back on error.

        async with get_db_session() as db:
            await db.execute(...)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ping_database() -> None:
    """Round trip to the database. Raises on failure."""
    async with get_db_session() as db:
        await db.execute(text("SELECT 1"))
