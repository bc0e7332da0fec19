"""Tests for fermentwatch.services.project_store: SQLAlchemy-backed store."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fermentwatch.core.errors import PersistenceError, ProjectNotFound
from fermentwatch.models.database import Device, Project, init_db
from fermentwatch.models.enums import ControlMode, DeviceKind
from fermentwatch.services.project_store import SQLProjectStore

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


def _engine() -> AsyncEngine:
    return create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine]:
    engine = _engine()
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def sql_store(engine: AsyncEngine) -> SQLProjectStore:
    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    async with session_maker() as session:
        session.add_all(
            [
                Device(id="s1", name="Fermenter probe", kind=DeviceKind.sensor,
                       ha_entity_id="sensor.fermenter"),
                Device(id="o1", name="Heat mat", kind=DeviceKind.outlet,
                       ha_entity_id="switch.heat_mat", address=""),
                Device(id="o2", name="Shelly plug", kind=DeviceKind.outlet,
                       address="192.168.1.40"),
            ]
        )
        await session.flush()
        session.add_all(
            [
                Project(id="old", name="Saison", sensor_id="s1", outlet_id="o1",
                        target_temperature=22.0,
                        created_at=datetime(2024, 1, 1, tzinfo=UTC)),
                Project(id="new", name="Lager", sensor_id="s1", outlet_id="o2",
                        target_temperature=10.0, control_mode=ControlMode.manual,
                        created_at=datetime(2024, 3, 1, tzinfo=UTC)),
            ]
        )
        await session.commit()
    return SQLProjectStore(session_maker)


# ===================================================================
# Reads
# ===================================================================


class TestReads:
    async def test_list_newest_first(self, sql_store: SQLProjectStore) -> None:
        projects = await sql_store.list_projects()
        assert [p.id for p in projects] == ["new", "old"]

    async def test_get_project_snapshot(self, sql_store: SQLProjectStore) -> None:
        project = await sql_store.get_project("old")

        assert project is not None
        assert project.target_temperature == 22.0
        assert project.current_temperature is None
        assert project.outlet_active is False
        assert project.control_mode == ControlMode.automatic
        assert project.is_automatic

    async def test_get_missing_project(self, sql_store: SQLProjectStore) -> None:
        assert await sql_store.get_project("nope") is None

    async def test_get_device_normalises_blank_address(self, sql_store: SQLProjectStore) -> None:
        device = await sql_store.get_device("o1")

        assert device is not None
        assert device.kind == DeviceKind.outlet
        assert device.ha_entity_id == "switch.heat_mat"
        assert device.address is None

    async def test_list_devices(self, sql_store: SQLProjectStore) -> None:
        devices = await sql_store.list_devices()
        assert {d.id for d in devices} == {"s1", "o1", "o2"}


# ===================================================================
# Writes
# ===================================================================


class TestWrites:
    async def test_update_current_temperature(self, sql_store: SQLProjectStore) -> None:
        await sql_store.update_current_temperature("old", 19.25)
        project = await sql_store.get_project("old")
        assert project is not None
        assert project.current_temperature == 19.25

    async def test_update_outlet_active(self, sql_store: SQLProjectStore) -> None:
        await sql_store.update_outlet_active("old", True)
        project = await sql_store.get_project("old")
        assert project is not None
        assert project.outlet_active is True

    async def test_update_control_mode(self, sql_store: SQLProjectStore) -> None:
        await sql_store.update_control_mode("new", ControlMode.automatic)
        project = await sql_store.get_project("new")
        assert project is not None
        assert project.control_mode == ControlMode.automatic

    async def test_update_target(self, sql_store: SQLProjectStore) -> None:
        await sql_store.update_target_temperature("new", 12.5)
        project = await sql_store.get_project("new")
        assert project is not None
        assert project.target_temperature == 12.5

    async def test_update_unknown_project(self, sql_store: SQLProjectStore) -> None:
        with pytest.raises(ProjectNotFound):
            await sql_store.update_outlet_active("ghost", True)


# ===================================================================
# Failures
# ===================================================================


class TestFailures:
    async def test_missing_schema_maps_to_persistence_error(self) -> None:
        engine = _engine()
        store = SQLProjectStore(async_sessionmaker(engine, expire_on_commit=False))
        try:
            with pytest.raises(PersistenceError):
                await store.list_projects()
            with pytest.raises(PersistenceError):
                await store.update_target_temperature("old", 20.0)
        finally:
            await engine.dispose()
