"""
Async database configuration with SQLAlchemy.
PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for local dev and tests.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from .config import settings

# Base class for all models
Base = declarative_base()


def make_engine(database_url: str, echo: bool = False):
    """Create an async engine; pool sizing only applies to server databases."""
    options = {"echo": echo, "pool_pre_ping": True}

    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=20,
            max_overflow=30,
            pool_recycle=3600,
            connect_args={"server_settings": {"application_name": "medstay"}}
            if "asyncpg" in database_url else {}
        )

    return create_async_engine(database_url, **options)


def make_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(settings.database_url)
async_session_factory = make_session_factory(engine)


# Dependency for FastAPI
async def get_session():
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind=None):
    """Create all tables"""
    # Models must be registered on Base.metadata before create_all
    from . import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping_db(bind=None) -> bool:
    async with (bind or engine).connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


async def close_db():
    """Close database connections"""
    await engine.dispose()
