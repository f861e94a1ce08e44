"""
Database engine, session factory and FastAPI dependency
"""

import logging
from typing import AsyncIterator

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from catalog_pilot.config import settings

logger = logging.getLogger(__name__)

# JSONB on Postgres, plain JSON elsewhere (local sqlite runs)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for all models."""


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # A single shared connection keeps in-memory databases alive
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
    }


engine = create_async_engine(
    settings.async_database_url,
    echo=False,
    **_engine_options(settings.async_database_url),
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency providing one session per request.

    Services commit explicitly; nothing is committed here.
    """
    async with async_session_factory() as session:
        yield session


async def init_db() -> None:
    """Create tables that do not exist yet."""
    # Import models so they register on the metadata
    import catalog_pilot.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")


async def close_db() -> None:
    """Release pooled connections."""
    await engine.dispose()
    logger.info("Database connections closed")
