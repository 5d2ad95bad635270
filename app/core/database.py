"""
LegalWatch Database Module
Async SQLAlchemy with SQLite (dev) / PostgreSQL (prod) support.
Includes connection pooling configuration for production.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy import event
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, AsyncAdaptedQueuePool

from app.core.config import get_settings


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


# Engine and session factory (lazy initialization)
_engine = None
_async_session_factory = None


def get_engine():
    """
    Get or create the async engine with proper connection pooling.

    Pool settings:
    - PostgreSQL: QueuePool with configurable size
    - SQLite: NullPool (SQLite doesn't support concurrent connections well)
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        is_sqlite = "sqlite" in settings.database_url

        pool_config = {}
        if is_sqlite:
            pool_config = {
                "poolclass": NullPool,
                "connect_args": {"check_same_thread": False},
            }
        else:
            pool_config = {
                "poolclass": AsyncAdaptedQueuePool,
                "pool_size": 5,
                "max_overflow": 10,
                "pool_timeout": 30,
                "pool_recycle": 1800,
                "pool_pre_ping": True,
            }

        _engine = create_async_engine(
            settings.database_url,
            echo=settings.debug,
            **pool_config,
        )
        if is_sqlite:
            _enable_sqlite_savepoints(_engine)
    return _engine


def _enable_sqlite_savepoints(engine) -> None:
    """
    Let SQLAlchemy emit BEGIN itself so SAVEPOINT / ROLLBACK TO work on SQLite.
    The driver's own implicit BEGIN otherwise turns the first savepoint into
    the outer transaction.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_session_factory():
    """Get or create the session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
    return _async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for database sessions.

    Usage:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Item))
            return result.scalars().all()
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db():
    """
    Initialize the database - create all tables.
    Call this on startup.
    """
    from app.models import models  # noqa: F401  (registers tables on Base)

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """
    Close database connections.
    Call this on shutdown.
    """
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.
    Use this in services and batch jobs (not FastAPI routes).

    Usage:
        async with get_db_session() as db:
            run = await db.get(IngestionRun, run_id)
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
