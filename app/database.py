# app/database.py

from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.orm import declarative_base

from app.core.config import get_settings

Base = declarative_base()


def build_engine(database_url: Optional[str] = None, **kwargs) -> AsyncEngine:
    """Create the async engine. Pool sizing only applies to server databases."""
    url = database_url or get_settings().async_database_url
    if url.startswith('postgresql://'):
        url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)

    options = dict(echo=False, future=True)
    if url.startswith('postgresql'):
        options.update(
            pool_size=10,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=1800,
        )
    options.update(kwargs)
    return create_async_engine(url, **options)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False
    )


engine = build_engine()
async_session = build_sessionmaker(engine)


@asynccontextmanager
async def get_session() -> AsyncSession:
    session = async_session()
    try:
        yield session
    finally:
        await session.close()
