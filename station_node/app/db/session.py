"""
Database session configuration.

Engine and session factory for the station store. PostgreSQL (asyncpg) in
production; SQLite (aiosqlite) is accepted for local runs and tests.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from station_node.app.core.config import settings


def create_station_engine(database_url: str, echo: bool = False, **kwargs) -> AsyncEngine:
    """Create the async engine; pool sizing only applies to server databases."""
    if not database_url.startswith("sqlite"):
        kwargs.setdefault("pool_size", settings.db_pool_size)
        kwargs.setdefault("max_overflow", settings.db_max_overflow)
        kwargs.setdefault("pool_pre_ping", True)
    return create_async_engine(database_url, echo=echo, future=True, **kwargs)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    # Objects stay readable after commit; responses are built from them
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_station_engine(settings.database_url, echo=settings.db_echo)

AsyncSessionLocal = create_session_factory(engine)

# Create declarative base for models
Base = declarative_base()
