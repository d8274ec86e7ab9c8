"""Async SQLAlchemy engine and session factory.

Nothing is created at import time.  ``create_session_factory`` builds the
engine and factory for a DATABASE_URL, and the application lifespan hands
the factory to the Pg* repositories through their constructors.  When no
DATABASE_URL is configured the service runs on in-memory repositories and
this module is only used for its declarative ``Base``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


def create_session_factory(
    database_url: str, *, echo: bool = False
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    engine = create_async_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )
    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, factory


@asynccontextmanager
async def lifespan_db(
    database_url: str | None, *, echo: bool = False
) -> AsyncGenerator[async_sessionmaker[AsyncSession] | None, None]:
    """Startup/shutdown hook for the database engine.

    Yields the session factory, or None when no database is configured.
    """
    if not database_url:
        logger.info("No DATABASE_URL configured; using in-memory repositories")
        yield None
        return

    engine, factory = create_session_factory(database_url, echo=echo)
    logger.info("Database engine created: %s", engine.url)
    try:
        yield factory
    finally:
        await engine.dispose()
        logger.info("Database engine disposed")
