# watchsync/database.py

from contextlib import asynccontextmanager
from typing import Optional
import os

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.orm import declarative_base

from watchsync.core.config import get_settings
from watchsync.core.exceptions import ConfigurationError

Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


def resolve_database_url(url: Optional[str] = None) -> str:
    database_url = url or get_settings().DATABASE_URL or os.environ.get('DATABASE_URL', '')
    if not database_url:
        raise ConfigurationError("DATABASE_URL is not set in environment variables")

    # Convert postgresql:// to postgresql+asyncpg:// for async support
    if database_url.startswith('postgresql://'):
        database_url = database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return database_url


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        database_url = resolve_database_url()
        options = {"echo": False, "future": True}
        if database_url.startswith("postgresql"):
            options.update(pool_size=10, max_overflow=20, pool_timeout=30, pool_recycle=1800)
        _engine = create_async_engine(database_url, **options)
    return _engine


def get_session_maker() -> async_sessionmaker:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False
        )
    return _session_maker


@asynccontextmanager
async def get_session() -> AsyncSession:
    session = get_session_maker()()
    try:
        yield session
    finally:
        await session.close()


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
