"""
Database session configuration.

Engine and session-factory construction for SQLAlchemy async.
The session factory is built once at startup and injected into the
services; the FastAPI ``get_db`` dependency reads it from ``app.state``.
"""

from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from backend.app.core.config import settings

# Create declarative base for models
Base = declarative_base()


def create_engine(database_url: Optional[str] = None, **overrides) -> AsyncEngine:
    """Create the async engine; pool sizing only applies to server databases."""
    url = database_url or settings.database_url
    options = {"echo": settings.db_echo, "future": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)
    options.update(overrides)
    return create_async_engine(url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory shared by every service."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_db(request: Request):
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
