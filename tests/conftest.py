"""Pytest configuration and fixtures"""
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import ASGITransport, AsyncClient

import app.models  # noqa: F401
from app.main import app
from app.core.config import settings
from app.core.database import Base, create_tables, get_db, get_session_factory
from app.dependencies.services import get_job_store, get_llm_client
from app.services.job_store import JobStore
from tests.factories import ScriptedLLM


@pytest.fixture
def store():
    return JobStore()


@pytest.fixture
def llm():
    return ScriptedLLM()


@pytest_asyncio.fixture
async def test_db():
    """Create in-memory test database"""
    # one shared connection so every session sees the same in-memory database
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    await create_tables(engine)

    # Create session factory
    TestSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async def override_get_db():
        async with TestSessionLocal() as session:
            yield session

    # Override dependencies
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestSessionLocal

    yield TestSessionLocal

    # Cleanup
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_session_factory, None)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def client(test_db, store, llm, monkeypatch):
    """Create test client bound to a fresh job store and a scripted model gateway"""
    monkeypatch.setattr(settings, "SAVE_DEBUG_OUTPUT", False)
    app.dependency_overrides[get_job_store] = lambda: store
    app.dependency_overrides[get_llm_client] = lambda: llm

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
