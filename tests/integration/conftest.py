import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from main import app
from chefdeck.core.database import get_async_session
from chefdeck.db.init_db import create_tables
from chefdeck.sync.api_client import InventoryAPIClient

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest.fixture
async def session_maker():
    """Fresh in-memory database per test"""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(test_engine)

    maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency for testing"""
        async with maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_db
    yield maker
    app.dependency_overrides.pop(get_async_session, None)
    await test_engine.dispose()


@pytest.fixture
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """Create test client"""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def api_client_factory(session_maker):
    """Sync-client API wrappers talking to the app in process"""
    clients = []

    def _make(bot_id: str = "bot-1") -> InventoryAPIClient:
        api = InventoryAPIClient(
            base_url="http://test/api/v1",
            bot_id=bot_id,
            transport=ASGITransport(app=app),
        )
        clients.append(api)
        return api

    yield _make
    for api in clients:
        await api.close()


@pytest.fixture
async def api_client(api_client_factory) -> InventoryAPIClient:
    return api_client_factory()
