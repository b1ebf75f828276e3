"""
Database Connection

Async SQLAlchemy engine and session management for the marketplace store.

Every writer runs inside one session transaction. Savepoints opened by
`constraint_guard` and by the per-item company reconciliation nest inside it,
so the engine must support SAVEPOINT on every backend, SQLite included.
"""

import logging
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine
)
from sqlalchemy.pool import NullPool

from config.settings import settings


logger = logging.getLogger("rfp_marketplace.database")

# Lazy initialization - don't create engine at module load
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """
    Create an async engine for `url`.

    SQLite connections (local runs and the test suite) take over transaction
    control from pysqlite and emit BEGIN themselves; without that, pysqlite
    silently commits around SAVEPOINT and nested writes are not isolated.
    """
    kwargs.setdefault("echo", settings.database_echo)
    engine = create_async_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine.sync_engine, "connect")
        def _no_implicit_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _explicit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


def get_engine() -> AsyncEngine:
    """Get or create the process-wide engine."""
    global _engine

    if _engine is None:
        # API and worker processes hold sessions briefly; no idle pool
        _engine = build_engine(settings.database_url, poolclass=NullPool)
        logger.info(f"Database engine created ({_engine.dialect.name})")
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Get or create the session factory bound to the current engine."""
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False
        )
    return _session_factory


def use_engine(engine: Optional[AsyncEngine]) -> None:
    """Bind the module to an already-built engine, or None to fall back to settings."""
    global _engine, _session_factory

    _engine = engine
    _session_factory = None


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    One unit of work: commit when the block exits, roll back on any exception.

    Notifications written during a transition share this transaction, so a
    failed write never leaves them behind.

    Usage:
        async with get_db_context() as db:
            result = await close_expired_rfps(db)
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency wrapping `get_db_context` around a request handler.

    Usage:
        @router.post("/rfps/close-expired")
        async def close_expired(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with get_db_context() as session:
        yield session


async def init_db():
    """
    Create all tables.

    Note: In production, use Alembic migrations instead.
    """
    from database.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Dispose the engine and forget the session factory."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
