"""
Database engines and session factories
Async sessions serve requests, the sync factory serves scripts and fixtures
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator
import logging

from .config import settings

logger = logging.getLogger(__name__)

is_sqlite = settings.DATABASE_URL.startswith("sqlite")


def _engine_options() -> dict:
    """Pool settings shared by the async and sync engines"""
    options = {"echo": settings.DATABASE_ECHO}
    if is_sqlite:
        # File databases are opened per checkout
        options["poolclass"] = NullPool
    else:
        options.update(
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_timeout=settings.DATABASE_POOL_TIMEOUT,
            pool_pre_ping=True,
        )
    return options


engine = create_async_engine(settings.database_url_async, **_engine_options())
sync_engine = create_engine(settings.DATABASE_URL, **_engine_options())

if is_sqlite:
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    event.listen(sync_engine, "connect", _enable_foreign_keys)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

SessionLocal = sessionmaker(sync_engine, autoflush=False, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session
    Commits when the handler returns, rolls back when it raised
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    from storefront.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")


async def close_db() -> None:
    await engine.dispose()
    logger.info("Database connections closed")
