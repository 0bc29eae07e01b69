"""
Pytest configuration and fixtures for Stashbox tests.

Every test gets its own file-backed SQLite database. The engine uses
NullPool like the application does, so concurrent sessions really are
separate connections.
"""
import pytest
from httpx import AsyncClient, ASGITransport

from stashbox.app import models  # noqa: F401
from stashbox.app.db.base import Base, get_db
from stashbox.app.db.session import build_engine, build_sessionmaker
from stashbox.app.models.user import User
from stashbox.app.security.cipher import FieldCipher


@pytest.fixture(scope="session")
def cipher():
    """A field cipher with a cheap scrypt cost."""
    return FieldCipher("test-encryption-key", n=2 ** 4)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'stashbox-test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session


async def _make_user(sessionmaker, username, is_active=True):
    async with sessionmaker() as session:
        user = User(username=username, is_active=is_active)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest.fixture
async def alice(sessionmaker):
    return await _make_user(sessionmaker, "alice")


@pytest.fixture
async def bob(sessionmaker):
    return await _make_user(sessionmaker, "bob")


@pytest.fixture
async def carol(sessionmaker):
    return await _make_user(sessionmaker, "carol")


@pytest.fixture
async def client(sessionmaker, cipher):
    """HTTP client bound to the test database and cipher."""
    from stashbox.app.main import app

    async def override_get_db():
        async with sessionmaker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.cipher = cipher
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
