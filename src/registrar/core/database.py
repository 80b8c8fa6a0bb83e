"""
Database Configuration

Async SQLAlchemy engine, session factory and declarative base.

Usage in FastAPI:
    @router.get("/items")
    async def list_items(db: AsyncSession = Depends(get_db)):
        ...

Background work (jobs, the migration engine) opens its own sessions via
``async_session_maker``.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from registrar.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_pre_ping=True,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a database session."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Verify the database connection on startup.

    Creates missing tables from ORM metadata when AUTO_CREATE_TABLES is set.
    """
    # Import models so every table is registered on Base.metadata
    import registrar.modules.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        if settings.auto_create_tables:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created from metadata")


async def close_db() -> None:
    """Dispose of the engine's connection pool."""
    await engine.dispose()
