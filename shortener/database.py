"""Database configuration and session management for the short link service.

This module provides SQLAlchemy async engine setup, session management,
and database lifecycle operations using PostgreSQL as the backend.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐
    │ Repository  │
    │ call        │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ async_session│
    │ (pooled)    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ begin() /    │
    │ execute()   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Auto-close   │
    │ (context)    │
    └─────────────┘

How to Use
===========
**Step 1 — Initialize on startup**::
    await init_db()  # Creates the links table and the code sequence

**Step 2 — Hand the session factory to the repository**::
    repository = SQLAlchemyLinkRepository(async_session)

**Step 3 — Cleanup on shutdown**::
    await close_db()

Key Behaviours
===============
- The connection pool is bounded (pool_size + max_overflow) and waits at most
  ``DB_POOL_TIMEOUT_SECONDS`` for a free connection.
- Sessions do not expire attributes on commit, so returned rows stay readable
  after their session closes.
- Tables and sequences are created automatically on application startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortener.config import get_settings

__all__ = ["Base", "async_session", "engine", "init_db", "close_db"]

settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT_SECONDS,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    # Importing the models registers the links table and its sequence on Base.metadata
    import shortener.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
