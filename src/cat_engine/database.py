"""Async database engine and request-scoped sessions.

Key exports:
- Base                   — DeclarativeBase for all ORM models
- FlexJSON               — JSONB on PostgreSQL, JSON on SQLite
- init_database(...)     — call at startup to create the engine and session factory
- create_schema()        — create missing tables (development and tests; deployments run Alembic)
- close_database()       — call at shutdown to dispose the engine
- get_db_session()       — FastAPI dependency with unit-of-work commit/rollback
"""

from collections.abc import AsyncGenerator

from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import JSON

from cat_engine.observability import get_logger

logger = get_logger(__name__)

FlexJSON = JSONB().with_variant(JSON(), "sqlite")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass


# Module-level engine and session factory — initialized by init_database()
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_database(database_url: str, echo: bool = False) -> None:
    """Initialize the engine and session factory.

    Must be called once at application startup (in the lifespan handler)
    before any request opens a session.

    Args:
        database_url: Async SQLAlchemy connection URL.
        echo: Log every SQL statement.
    """
    global _engine, _session_factory  # noqa: PLW0603

    logger.info("Initializing database engine", dialect=database_url.split(":", 1)[0])
    _engine = create_async_engine(database_url, echo=echo, pool_pre_ping=True)
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_schema() -> None:
    """Create all tables registered on Base.metadata that do not exist yet.

    Never alters an existing table. Deployed databases are managed by the
    Alembic revisions under cat_engine/migrations.
    """
    if _engine is None:
        raise RuntimeError("Database has not been initialized. Call init_database() first.")

    import cat_engine.core.models  # noqa: F401 — register ORM models on Base.metadata

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")


async def close_database() -> None:
    """Dispose the engine. Called at application shutdown."""
    global _engine, _session_factory  # noqa: PLW0603

    if _engine is not None:
        logger.info("Disposing database engine")
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session with unit-of-work semantics.

    Repositories only call add()/execute()/flush(). Commit happens once at
    the end of a successful request; any exception rolls the whole request back.

    Raises:
        RuntimeError: If init_database() has not been called yet.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Database has not been initialized. Call init_database() in the application lifespan handler."
        )

    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
