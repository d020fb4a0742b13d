"""Async SQLAlchemy engine and session management.

One engine per process, created in the app lifespan. Sessions never expire
objects on commit: services keep using the profile they just committed.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict[str, object]:
    # SQLite (local runs) has no connection pool to size
    if make_url(url).get_backend_name() == "sqlite":
        return {}
    return {"pool_size": 20, "max_overflow": 10, "pool_pre_ping": True}


async def init_db(url: str, echo: bool = False) -> None:
    """Create the engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = create_async_engine(url, echo=echo, **_engine_options(url))
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)


async def close_db() -> None:
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work outside a request (startup seeding, scripts)."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session for one request (FastAPI dependency)."""
    async with get_session_factory()() as session:
        yield session
