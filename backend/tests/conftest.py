"""
Pytest fixtures for the test database, HTTP client, users and services.

Every test gets its own SQLite file (aiosqlite) so tests are isolated and
concurrent sessions behave like separate API requests. Services are called
through `call`, which opens a fresh session per call just like get_db does
per request.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("LOCK_BACKEND", "local")

from datetime import date
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bandroom.core.security import Actor, create_access_token, hash_password
from bandroom.db.base import Base
from bandroom.db.session import build_engine, get_db
from bandroom.main import app
from bandroom.models.enums import InstrumentStatus, InstrumentType, UserRole
from bandroom.models.instrument import Instrument
from bandroom.models.user import User
from bandroom.services import reservation_service
from bandroom.services.lock_factory import set_resource_locks


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'bandroom_test.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def fresh_locks():
    """Each test starts from an empty lock registry."""
    set_resource_locks(None)
    yield
    set_resource_locks(None)


@pytest.fixture
def call(session_factory):
    """Run a service function in its own session, like one API request."""

    async def _call(service_fn, *args, **kwargs):
        async with session_factory() as session:
            return await service_fn(session, *args, **kwargs)

    return _call


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own test-database session."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(session_factory, name: str, role: UserRole = UserRole.MEMBER) -> User:
    async with session_factory() as session:
        user = User(
            name=name,
            email=f"{name.lower()}@example.com",
            hashed_password=hash_password("testpassword123"),
            role=role.value,
        )
        session.add(user)
        await session.commit()
        return user


@pytest_asyncio.fixture
async def member(session_factory) -> User:
    return await _make_user(session_factory, "Alice")


@pytest_asyncio.fixture
async def other_member(session_factory) -> User:
    return await _make_user(session_factory, "Bob")


@pytest_asyncio.fixture
async def admin(session_factory) -> User:
    return await _make_user(session_factory, "Root", UserRole.ADMIN)


@pytest_asyncio.fixture
async def make_member(session_factory):
    """Factory for extra members (capacity and concurrency tests)."""
    counter = {"n": 0}

    async def _make() -> User:
        counter["n"] += 1
        return await _make_user(session_factory, f"Player{counter['n']}")

    return _make


@pytest.fixture
def member_actor(member) -> Actor:
    return Actor.from_user(member)


@pytest.fixture
def other_actor(other_member) -> Actor:
    return Actor.from_user(other_member)


@pytest.fixture
def admin_actor(admin) -> Actor:
    return Actor.from_user(admin)


def headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def member_headers(member) -> dict:
    return headers_for(member)


@pytest.fixture
def other_headers(other_member) -> dict:
    return headers_for(other_member)


@pytest.fixture
def admin_headers(admin) -> dict:
    return headers_for(admin)


async def _make_instrument(session_factory, name: str, status: InstrumentStatus) -> Instrument:
    async with session_factory() as session:
        instrument = Instrument(
            name=name,
            description="Test instrument",
            type=InstrumentType.STRING.value,
            status=status.value,
        )
        session.add(instrument)
        await session.commit()
        return instrument


@pytest_asyncio.fixture
async def guitar(session_factory) -> Instrument:
    return await _make_instrument(session_factory, "Telecaster", InstrumentStatus.AVAILABLE)


@pytest_asyncio.fixture
async def broken_drums(session_factory) -> Instrument:
    return await _make_instrument(session_factory, "Drum kit", InstrumentStatus.MAINTENANCE)


@pytest_asyncio.fixture
async def member_reservation(call, member_actor, guitar):
    """An ACTIVE reservation proving the member may book rooms."""
    return await call(
        reservation_service.reserve_instrument,
        member_actor, guitar.id, date(2024, 6, 1), date(2024, 6, 30),
    )


@pytest.fixture
def auth_headers_for():
    return headers_for
