"""Shared fixtures: a file-backed SQLite database and seed helpers."""

import asyncio
from collections.abc import AsyncGenerator, Generator
from decimal import Decimal
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from pipevault.database import Base, get_db, get_session_factory
from pipevault.main import app
from pipevault.models import (
    AllocationMode,
    InventoryRecord,
    InventoryStatus,
    LoadDirection,
    LoadStatus,
    RequestStatus,
    StorageLocation,
    StorageRequest,
    TruckingLoad,
)
from pipevault.services.caller import Caller, CallerRole


def make_sqlite_engine(path: Path, **kwargs: Any) -> AsyncEngine:
    """Async engine over a SQLite file that supports SAVEPOINT and write locking."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", **kwargs)

    # Let SQLAlchemy own BEGIN so SAVEPOINTs and rollbacks behave
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")

    return engine


async def create_tables(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Engine over a throwaway SQLite file with every table created."""
    engine = make_sqlite_engine(tmp_path / "pipevault.db")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def admin() -> Caller:
    return Caller(identity="yard.admin@pipevault.test", role=CallerRole.ADMIN)


@pytest.fixture
def tenant() -> Caller:
    return Caller(identity="ops@acme.test", role=CallerRole.TENANT, tenant_id="acme")


class Seeder:
    """Inserts committed rows for a test."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def _add(self, obj):
        async with self.session_factory() as session:
            session.add(obj)
            await session.commit()
        return obj

    async def location(
        self,
        location_id: str,
        capacity: str | int = 100,
        occupied: str | int = 0,
        mode: AllocationMode = AllocationMode.LINEAR,
    ) -> StorageLocation:
        return await self._add(
            StorageLocation(
                id=location_id,
                name=f"Rack {location_id}",
                allocation_mode=mode.value,
                capacity=Decimal(capacity),
                occupied=Decimal(occupied),
            )
        )

    async def request(
        self,
        required_quantity: str | int = 50,
        status: RequestStatus = RequestStatus.PENDING,
        tenant_id: str = "acme",
        assigned_location_ids: list[str] | None = None,
    ) -> StorageRequest:
        return await self._add(
            StorageRequest(
                tenant_id=tenant_id,
                reference_id="AFE-158970-1",
                contact_email="ops@acme.test",
                required_quantity=Decimal(required_quantity),
                status=status.value,
                assigned_location_ids=assigned_location_ids or [],
            )
        )

    async def load(
        self,
        request_id: str,
        planned_quantity: str | int = 50,
        status: LoadStatus = LoadStatus.NEW,
        direction: LoadDirection = LoadDirection.INBOUND,
        sequence_number: int = 1,
        location_id: str | None = None,
    ) -> TruckingLoad:
        return await self._add(
            TruckingLoad(
                request_id=request_id,
                direction=direction.value,
                sequence_number=sequence_number,
                status=status.value,
                planned_quantity=Decimal(planned_quantity),
                location_id=location_id,
            )
        )

    async def inventory(
        self,
        request_id: str,
        location_id: str,
        quantity: str | int,
        status: InventoryStatus = InventoryStatus.IN_STORAGE,
        tenant_id: str = "acme",
    ) -> InventoryRecord:
        return await self._add(
            InventoryRecord(
                tenant_id=tenant_id,
                request_id=request_id,
                location_id=location_id,
                quantity=Decimal(quantity),
                status=status.value,
            )
        )

    async def get(self, model, key):
        async with self.session_factory() as session:
            return await session.get(model, key)


@pytest.fixture
def seed(session_factory: async_sessionmaker[AsyncSession]) -> Seeder:
    return Seeder(session_factory)


@pytest.fixture
def client(tmp_path: Path) -> Generator[TestClient, None, None]:
    """TestClient whose database dependencies point at a fresh SQLite file.

    TestClient runs every request on its own event loop, so connections are
    not pooled across requests.
    """
    engine = make_sqlite_engine(tmp_path / "api.db", poolclass=NullPool)
    asyncio.run(create_tables(engine))
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"X-Caller-Id": "yard.admin@pipevault.test", "X-Caller-Role": "admin"}


@pytest.fixture
def tenant_headers() -> dict[str, str]:
    return {
        "X-Caller-Id": "ops@acme.test",
        "X-Caller-Role": "tenant",
        "X-Tenant-Id": "acme",
    }
