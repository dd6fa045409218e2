"""Shared fixtures: file-backed SQLite store, audit trail and recording sink."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tacs.database import Base
from tacs.storage.audit import AdminContext, AuditEvent, AuditTrail
from tacs.storage.store import ActivationStore


class RecordingSink:
    """Audit sink that keeps events in memory."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def emit(self, event: AuditEvent) -> None:
        self.events.append(event)


class FailingSink:
    """Audit sink whose transport is down."""

    async def emit(self, event: AuditEvent) -> None:
        raise ConnectionError("collector unreachable")


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'tacs.db'}"


@pytest_asyncio.fixture
async def engine(db_url):
    engine = create_async_engine(db_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def audit_engine(db_url, engine):
    audit_engine = create_async_engine(db_url)
    yield audit_engine
    await audit_engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
def audit_session_maker(audit_engine):
    return async_sessionmaker(
        audit_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def audit(audit_session_maker, sink):
    return AuditTrail(audit_session_maker, sink)


@pytest.fixture
def store(db, audit):
    return ActivationStore(db, audit)


@pytest.fixture
def ctx():
    return AdminContext(
        actor="alice",
        session_user="alice",
        host="ops-1",
        ip_address="10.0.0.5",
        module="pytest",
    )
