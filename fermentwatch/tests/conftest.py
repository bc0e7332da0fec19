import sys
from collections.abc import AsyncGenerator
from dataclasses import replace
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

BASE_DIR = Path(__file__).resolve().parents[2]
if str(BASE_DIR) not in sys.path:
    sys.path.append(str(BASE_DIR))

from fermentwatch.core.actuators import OutletDriver  # noqa: E402
from fermentwatch.core.errors import PersistenceError, ProjectNotFound  # noqa: E402
from fermentwatch.integrations.ha_client import HAClient  # noqa: E402
from fermentwatch.integrations.shelly_client import ShellyClient  # noqa: E402
from fermentwatch.integrations.timeseries import InfluxRecorder  # noqa: E402
from fermentwatch.models.enums import ControlMode, DeviceKind  # noqa: E402
from fermentwatch.services.project_store import DeviceRecord, ProjectRecord  # noqa: E402


class InMemoryProjectStore:
    """Dict-backed project store with switchable failures."""

    def __init__(self) -> None:
        self.projects: dict[str, ProjectRecord] = {}
        self.devices: dict[str, DeviceRecord] = {}
        self.fail_reads = False
        self.fail_writes = False

    def add_device(self, device: DeviceRecord) -> DeviceRecord:
        self.devices[device.id] = device
        return device

    def add_project(self, project: ProjectRecord) -> ProjectRecord:
        self.projects[project.id] = project
        return project

    def _check_read(self) -> None:
        if self.fail_reads:
            raise PersistenceError("store offline")

    async def list_projects(self) -> list[ProjectRecord]:
        self._check_read()
        return list(self.projects.values())

    async def get_project(self, project_id: str) -> ProjectRecord | None:
        self._check_read()
        return self.projects.get(project_id)

    async def get_device(self, device_id: str) -> DeviceRecord | None:
        self._check_read()
        return self.devices.get(device_id)

    async def list_devices(self) -> list[DeviceRecord]:
        self._check_read()
        return list(self.devices.values())

    async def _update(self, project_id: str, **values: Any) -> None:
        if self.fail_writes:
            raise PersistenceError("store read-only")
        if project_id not in self.projects:
            raise ProjectNotFound(project_id)
        self.projects[project_id] = replace(self.projects[project_id], **values)

    async def update_current_temperature(self, project_id: str, value: float) -> None:
        await self._update(project_id, current_temperature=value)

    async def update_outlet_active(self, project_id: str, active: bool) -> None:
        await self._update(project_id, outlet_active=active)

    async def update_control_mode(self, project_id: str, mode: ControlMode) -> None:
        await self._update(project_id, control_mode=ControlMode(mode))

    async def update_target_temperature(self, project_id: str, value: float) -> None:
        await self._update(project_id, target_temperature=value)


def make_project(
    project_id: str = "p1",
    *,
    sensor_id: str | None = "s1",
    outlet_id: str | None = "o1",
    target: float = 20.0,
    current: float | None = None,
    outlet_active: bool = False,
    mode: ControlMode = ControlMode.automatic,
) -> ProjectRecord:
    return ProjectRecord(
        id=project_id,
        name=f"Batch {project_id}",
        sensor_id=sensor_id,
        outlet_id=outlet_id,
        target_temperature=target,
        current_temperature=current,
        outlet_active=outlet_active,
        control_mode=mode,
    )


def make_sensor(device_id: str = "s1", entity_id: str | None = "sensor.fermenter") -> DeviceRecord:
    return DeviceRecord(id=device_id, name=device_id, kind=DeviceKind.sensor, ha_entity_id=entity_id)


def make_outlet(
    device_id: str = "o1",
    *,
    entity_id: str | None = "switch.heater",
    address: str | None = None,
) -> DeviceRecord:
    return DeviceRecord(
        id=device_id,
        name=device_id,
        kind=DeviceKind.outlet,
        address=address,
        ha_entity_id=entity_id,
    )


# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store() -> InMemoryProjectStore:
    store = InMemoryProjectStore()
    store.add_device(make_sensor())
    store.add_device(make_outlet())
    return store


@pytest.fixture()
def hub() -> AsyncMock:
    hub = AsyncMock(spec=HAClient)
    hub.read_entity_state.return_value = "20.0"
    return hub


@pytest.fixture()
def shelly() -> AsyncMock:
    return AsyncMock(spec=ShellyClient)


@pytest.fixture()
def recorder() -> AsyncMock:
    return AsyncMock(spec=InfluxRecorder)


@pytest.fixture()
def outlets() -> AsyncMock:
    return AsyncMock(spec=OutletDriver)


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient]:
    """HTTP client against the app; tests wire ``app.state`` themselves."""
    from fermentwatch.api.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    for name in ("project_store", "outlet_service", "health_service", "control_loop"):
        if hasattr(app.state, name):
            delattr(app.state, name)
