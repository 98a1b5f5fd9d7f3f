"""pytest fixtures for Sawell backend tests.

Provides:
- utc_timezone: Autouse fixture enforcing UTC timezone
- settings: Function-scoped Settings pointing at a throwaway SQLite database
- session_factory: Async session factory with all tables created
- session: Function-scoped database session
- uow_factory: Function-scoped UnitOfWork factory
"""

import os

# Settings() is instantiated when sawell.app is imported; give it a database URL
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import sawell.models  # noqa: E402, F401
from sawell.core.config import Settings  # noqa: E402
from sawell.core.database import setup_db_session  # noqa: E402
from sawell.uow import create_uow_factory  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests.

    Autouse fixture ensures TZ=UTC is set before any test runs.
    """
    os.environ["TZ"] = "UTC"
    yield


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Provide test settings backed by a per-test SQLite file."""
    return Settings(  # type: ignore[call-arg]
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        APP_ENV="test",
        HEYGEN_API_KEY="test-heygen-key",
        HEYGEN_API_BASE_URL="https://heygen.test",
        CREDIT_REFRESH_ENABLED=False,
    )


@pytest_asyncio.fixture
async def session_factory(settings: Settings):
    """Provide a session factory over a freshly created schema."""
    factory = setup_db_session(settings.database_url)
    engine = factory.kw["bind"]

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory."""
    return create_uow_factory(session_factory)
