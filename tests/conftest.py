import sys
from pathlib import Path

import anyio
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

# Ensure the repo root is on sys.path so `import services.*` works in tests.
ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

from database.connection import build_engine  # noqa: E402
from database.models import Base  # noqa: E402


async def create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def run_db():
    """
    Run `fn(db)` against a fresh in-memory store inside a single event loop.

    Usage:
        def test_something(run_db):
            async def scenario(db):
                ...
            run_db(scenario)
    """
    def runner(fn):
        async def main():
            engine = build_engine(
                "sqlite+aiosqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
            try:
                await create_schema(engine)
                async with session_factory(engine)() as db:
                    return await fn(db)
            finally:
                await engine.dispose()

        return anyio.run(main)

    return runner


@pytest.fixture
def file_engine(tmp_path):
    """File-backed store shared between the test thread and the ASGI test client."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'marketplace.db'}", poolclass=NullPool)
    anyio.run(create_schema, engine)
    yield engine
    anyio.run(engine.dispose)
