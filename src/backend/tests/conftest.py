"""Pytest configuration and fixtures for RoomComfort tests."""

from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from roomcomfort.main import fastapi_app as app, seed_reference_data
# Import all models to ensure they're registered with Base.metadata
from roomcomfort.models import (
    Base, User, Role, Ownership, Threshold, ThresholdAdjustment, Reading, Recommendation,
    ADMIN_ROLE, USER_ROLE,
)
from roomcomfort.core.deps import get_db
from roomcomfort.core.security import hash_password
from roomcomfort.services.role_service import RoleService

# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

USER_PASSWORD = "TestPassword123"
ADMIN_PASSWORD = "AdminPassword123"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine with shared connection and seeded reference data."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_sessionmaker(engine, expire_on_commit=False)() as session:
        await seed_reference_data(session)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(db_engine) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database override."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with async_session() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(
    db_session: AsyncSession,
    username: str,
    password: str,
    role_name: str,
) -> User:
    role = await RoleService(db_session).require_role(role_name)
    user = User(
        username=username,
        email=f"{username}@roomcomfort.io",
        hashed_password=hash_password(password),
        role=role,
        is_active=True,
        version=1,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a regular test user."""
    return await _create_user(db_session, "alice", USER_PASSWORD, USER_ROLE)


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    """Create a second regular user."""
    return await _create_user(db_session, "bob", USER_PASSWORD, USER_ROLE)


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """Create a test admin user."""
    return await _create_user(db_session, "admin", ADMIN_PASSWORD, ADMIN_ROLE)


@pytest_asyncio.fixture
async def test_ownership(db_session: AsyncSession, test_user: User) -> Ownership:
    """Register chip ESP-07 to the test user's bedroom."""
    ownership = Ownership(
        chip_id="ESP-07",
        user_id=test_user.id,
        room_name="Bedroom",
        image_name="bedroom.png",
        version=1,
    )
    db_session.add(ownership)
    await db_session.commit()
    await db_session.refresh(ownership)
    return ownership


async def login(client: AsyncClient, username: str, password: str) -> dict[str, str]:
    """Log in and return Authorization headers."""
    response = await client.post(
        "/api/v1/users/login",
        json={"username": username, "password": password},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['accessToken']}"}


@pytest_asyncio.fixture
async def auth_headers(client: AsyncClient, test_user: User) -> dict[str, str]:
    return await login(client, test_user.username, USER_PASSWORD)


@pytest_asyncio.fixture
async def other_headers(client: AsyncClient, other_user: User) -> dict[str, str]:
    return await login(client, other_user.username, USER_PASSWORD)


@pytest_asyncio.fixture
async def admin_headers(client: AsyncClient, admin_user: User) -> dict[str, str]:
    return await login(client, admin_user.username, ADMIN_PASSWORD)
