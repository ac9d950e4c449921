"""Database configuration and session management."""

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from passkey_server.config import Settings

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()


def create_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    In-memory SQLite databases share a single connection so every session
    sees the same tables.
    """
    kwargs = {"echo": settings.debug, "future": True, "pool_pre_ping": True}
    if settings.database_url.startswith("sqlite") and ":memory:" in settings.database_url:
        kwargs.update(
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(settings.database_url, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create the async session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        # Import all models to ensure they are registered
        from passkey_server.models import user, webauthn_challenge, webauthn_credential  # noqa: F401

        # Create all tables
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()
