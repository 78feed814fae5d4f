"""
Database Configuration
SQLAlchemy async setup (PostgreSQL in production)
"""

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from portfolio_engine.config import settings


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def normalize_async_url(url: str) -> str:
    """Convert postgres:// and postgresql:// to postgresql+asyncpg://"""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Create the async engine on first use"""
    url = normalize_async_url(settings.DATABASE_URL)
    options = {"echo": settings.DEBUG}
    if url.startswith("postgresql"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=30,
            pool_recycle=3600,
        )
    return create_async_engine(url, **options)


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker:
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


async def close_db():
    """Close database connections"""
    await get_engine().dispose()
    get_session_factory.cache_clear()
    get_engine.cache_clear()
