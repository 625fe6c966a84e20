# backend/app/db/database.py
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine, async_sessionmaker
from sqlalchemy.engine import make_url
from typing import AsyncGenerator, Dict, Any

from app.core.config import settings


def normalize_async_url(url: str) -> str:
    """Force async drivers for plain postgres/sqlite URLs"""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def engine_options(url: str, pool_size: int, max_overflow: int) -> Dict[str, Any]:
    """Pool settings only apply to server databases"""
    if make_url(url).get_backend_name() == "sqlite":
        return {"echo": settings.DEBUG}
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "echo": settings.DEBUG,
    }


def create_engine_for(url: str, pool_size: int, max_overflow: int = 0) -> AsyncEngine:
    url = normalize_async_url(url)
    return create_async_engine(url, **engine_options(url, pool_size, max_overflow))


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
engine = create_engine_for(settings.DATABASE_URL, settings.DB_POOL_SIZE, settings.DB_MAX_OVERFLOW)

# Create async session factory
async_session_local = make_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session dependency"""
    async with async_session_local() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = None):
    """Initialize directory database (create tables)"""
    from app.db.base import Base

    async with (bind or engine).begin() as conn:
        # Import all models to ensure they're registered
        from app.db import models  # noqa: F401

        # Create tables
        await conn.run_sync(Base.metadata.create_all)


async def init_tenant_db(bind: AsyncEngine):
    """Create the tenant-side tables in an isolated database"""
    from app.db.base import TenantBase
    from app.db.models import tenant_data  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(TenantBase.metadata.create_all)


async def close_db():
    """Close database connections"""
    await engine.dispose()
