"""
Shared fixtures.

Every test gets a fresh SQLite file database. The ASGI client opens a new
session per request, as production does, so tests that read rows after a
request must refresh or re-query through ``test_db``.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.pool import NullPool

from app.main import app
from app.database import Base, build_engine, build_session_factory, get_db, init_db
from app.api.deps import get_password_hash, create_access_token, get_email_service
from app.models.user import User
from app.services.sendgrid_service import MockSendGridService

TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

ADMIN_EMAIL = "admin@scuoladilongboard.it"
ADMIN_PASSWORD = "adminpassword123"
STAFF_EMAIL = "istruttore@scuoladilongboard.it"
STAFF_PASSWORD = "testpassword123"


@pytest_asyncio.fixture
async def session_factory():
    engine = build_engine(TEST_DATABASE_URL, poolclass=NullPool)
    await init_db(engine)

    yield build_session_factory(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def test_db(session_factory):
    """Session for arranging data and asserting on it."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_email():
    """Records outgoing mail; set ``fail_all`` or ``fail_for`` to simulate rejections."""
    return MockSendGridService()


async def _create_user(db, email: str, password: str, **flags) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash(password),
        first_name=email.split("@")[0].capitalize(),
        last_name="Longboard",
        is_active=True,
        **flags,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def test_user(test_db):
    """Staff account without newsletter rights."""
    return await _create_user(test_db, STAFF_EMAIL, STAFF_PASSWORD)


@pytest_asyncio.fixture
async def admin_user(test_db):
    return await _create_user(test_db, ADMIN_EMAIL, ADMIN_PASSWORD, is_admin=True)


@pytest_asyncio.fixture
async def client(session_factory, mock_email):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_service] = lambda: mock_email

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def _bearer(user: User) -> str:
    return f"Bearer {create_access_token(data={'sub': str(user.id), 'email': user.email})}"


@pytest_asyncio.fixture
async def admin_client(client: AsyncClient, admin_user: User):
    client.headers["Authorization"] = _bearer(admin_user)
    return client


@pytest_asyncio.fixture
async def user_client(client: AsyncClient, test_user: User):
    client.headers["Authorization"] = _bearer(test_user)
    return client
