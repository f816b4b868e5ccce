"""
Async database engine, session factory and declarative base.
"""
import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from medmatch.config import settings

logger = logging.getLogger(__name__)


engine = create_async_engine(settings.database_url, echo=False)

# Session factory used by the matching service; tests swap this attribute
AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session for read-only endpoints."""
    async with AsyncSessionLocal() as session:
        yield session


async def init_db() -> None:
    """Create all tables. Only used for local development; production uses Alembic."""
    # Import models so Base.metadata knows every table
    import medmatch.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def close_db() -> None:
    """Close database engine and connections."""
    await engine.dispose()
