# backend/core/database.py

from functools import lru_cache
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from .config import get_settings

Base = declarative_base()


@lru_cache()
def get_engine() -> AsyncEngine:
    """Create the async engine on first use so importing models needs no driver."""
    settings = get_settings()
    database_url = settings.database_url

    engine_kwargs = {
        "echo": settings.log_sql_queries,
        "pool_pre_ping": True,
    }

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if database_url.endswith(":memory:") or database_url.endswith("://"):
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow

    return create_async_engine(database_url, **engine_kwargs)


@lru_cache()
def get_session_factory() -> async_sessionmaker:
    return async_sessionmaker(get_engine(), class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with get_session_factory()() as db:
        yield db


async def init_models() -> None:
    """Create tables for every model registered on Base (development/sqlite only)."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
