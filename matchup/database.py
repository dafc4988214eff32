"""
Matchup — Async Database Engine & Session Factory

Builds a single async engine from ``DATABASE_URL``.  PostgreSQL (asyncpg) is
the production target; SQLite through aiosqlite is accepted for local
development and the test-suite.

Every service opens its own short transactions through
``async_session_factory``, so the engine owns commit boundaries rather than
the request.
"""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from matchup.config import get_settings

logger = structlog.get_logger("matchup.database")


# ------------------------------------------------------------------ #
# Declarative base for all ORM models
# ------------------------------------------------------------------ #

class Base(DeclarativeBase):
    """Shared declarative base.

    Every SQLAlchemy model in the project should inherit from this class::

        from matchup.database import Base

        class Participant(Base):
            __tablename__ = "participants"
            ...
    """
    pass


# ------------------------------------------------------------------ #
# Pool configuration (server databases only)
# ------------------------------------------------------------------ #

_POOL_KWARGS = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def normalise_database_url(url: str) -> str:
    """Transparently upgrade a plain ``postgresql://`` scheme so that
    operators do not need to remember the asyncpg dialect prefix."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine for ``url``.

    SQLite manages its own pooling, so the server pool tuning is only
    applied to PostgreSQL URLs.
    """
    url = normalise_database_url(url)
    kwargs = {} if url.startswith("sqlite") else dict(_POOL_KWARGS)
    engine = create_async_engine(url, echo=echo, **kwargs)
    logger.info("database_engine_created", dialect=engine.dialect.name)
    return engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ------------------------------------------------------------------ #
# Module-level engine & session factory
# ------------------------------------------------------------------ #

_settings = get_settings()

engine = build_engine(_settings.DATABASE_URL, echo=(_settings.LOG_LEVEL == "DEBUG"))

async_session_factory: async_sessionmaker[AsyncSession] = build_session_factory(engine)

