"""
Test fixtures for the Expense Tracker test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - client: Async HTTP test client (unauthenticated)
  - authenticated_client: Test client with a pre-registered user and JWT
  - second_authenticated_client: A second user, on its own client, for
    cross-user tests
  - user: A user created directly in db_session for service-level tests

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database — no state leaks between tests.
  - We override FastAPI's get_db dependency to inject our test session,
    so the application code works exactly as it does in production.
  - The authenticated clients sign up through the real endpoint, so they
    exercise the real signup flow (not just DB inserts).
"""

import os

# Settings refuse to load without a secret; set one before the app is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from expense_tracker.database import Base, get_db
from expense_tracker.main import app
from expense_tracker.services import auth_service


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Provide an async session bound to the test engine."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def user(db_session):
    """A committed user with a zero starting balance, for service tests."""
    user, _ = await auth_service.signup(
        db=db_session,
        email="ledger@example.com",
        password="SecurePass123!",
        name="Ledger Owner",
    )
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def app_transport(db_engine):
    """
    ASGI transport with the test database injected.

    This overrides the get_db dependency so all requests hit the
    in-memory test database instead of the real one.
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield ASGITransport(app=app)
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app_transport):
    """Async HTTP test client, not logged in."""
    async with AsyncClient(transport=app_transport, base_url="http://test") as ac:
        yield ac


async def _signup(client: AsyncClient, email: str, password: str, name: str) -> AsyncClient:
    response = await client.post(
        "/auth/signup",
        json={"email": email, "password": password, "name": name},
    )
    assert response.status_code == 201, f"Signup failed: {response.text}"
    client.headers["Authorization"] = f"Bearer {response.json()['token']}"
    return client


@pytest_asyncio.fixture
async def authenticated_client(client):
    """
    Test client with a pre-registered user and JWT token.

    Signs up a test user via the real signup endpoint, then sets the
    Authorization header on the client for all subsequent requests.
    """
    return await _signup(client, "testuser@example.com", "SecurePass123!", "Test User")


@pytest_asyncio.fixture
async def second_authenticated_client(app_transport):
    """
    A second authenticated user on its own client.

    Use this alongside authenticated_client to verify that User A
    cannot see or change User B's ledger.
    """
    async with AsyncClient(transport=app_transport, base_url="http://test") as ac:
        yield await _signup(ac, "seconduser@example.com", "SecurePass456!", "Second User")
