"""Project and device access for the control loop and the API.

The loop only ever sees immutable snapshots (:class:`ProjectRecord`,
:class:`DeviceRecord`); each read opens its own short session so nothing is
cached between cycles and concurrent edits from the dashboard are always
observed on the next read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fermentwatch.core.errors import PersistenceError, ProjectNotFound
from fermentwatch.models.database import Device, Project
from fermentwatch.models.enums import ControlMode, DeviceKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeviceRecord:
    id: str
    name: str
    kind: DeviceKind
    address: str | None = None
    ha_entity_id: str | None = None

    @classmethod
    def from_orm(cls, device: Device) -> DeviceRecord:
        return cls(
            id=device.id,
            name=device.name,
            kind=DeviceKind(device.kind),
            address=device.address or None,
            ha_entity_id=device.ha_entity_id or None,
        )


@dataclass(frozen=True, slots=True)
class ProjectRecord:
    id: str
    name: str
    sensor_id: str | None
    outlet_id: str | None
    target_temperature: float
    current_temperature: float | None
    outlet_active: bool
    control_mode: ControlMode
    created_at: datetime | None = None

    @property
    def is_automatic(self) -> bool:
        return self.control_mode == ControlMode.automatic

    @classmethod
    def from_orm(cls, project: Project) -> ProjectRecord:
        return cls(
            id=project.id,
            name=project.name,
            sensor_id=project.sensor_id,
            outlet_id=project.outlet_id,
            target_temperature=float(project.target_temperature),
            current_temperature=(
                float(project.current_temperature)
                if project.current_temperature is not None
                else None
            ),
            outlet_active=bool(project.outlet_active),
            control_mode=ControlMode(project.control_mode or ControlMode.automatic),
            created_at=project.created_at,
        )


class ProjectStore(Protocol):
    """Read/write contract the control loop and services depend on."""

    async def list_projects(self) -> list[ProjectRecord]: ...

    async def get_project(self, project_id: str) -> ProjectRecord | None: ...

    async def get_device(self, device_id: str) -> DeviceRecord | None: ...

    async def list_devices(self) -> list[DeviceRecord]: ...

    async def update_current_temperature(self, project_id: str, value: float) -> None: ...

    async def update_outlet_active(self, project_id: str, active: bool) -> None: ...

    async def update_control_mode(self, project_id: str, mode: ControlMode) -> None: ...

    async def update_target_temperature(self, project_id: str, value: float) -> None: ...


class SQLProjectStore:
    """:class:`ProjectStore` backed by the SQLAlchemy ``projects``/``devices`` tables."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def list_projects(self) -> list[ProjectRecord]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(Project).order_by(Project.created_at.desc())
                )
                return [ProjectRecord.from_orm(p) for p in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not list projects: {exc}") from exc

    async def get_project(self, project_id: str) -> ProjectRecord | None:
        try:
            async with self._session_maker() as session:
                project = await session.get(Project, project_id)
                return ProjectRecord.from_orm(project) if project else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read project {project_id}: {exc}") from exc

    async def get_device(self, device_id: str) -> DeviceRecord | None:
        try:
            async with self._session_maker() as session:
                device = await session.get(Device, device_id)
                return DeviceRecord.from_orm(device) if device else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not read device {device_id}: {exc}") from exc

    async def list_devices(self) -> list[DeviceRecord]:
        try:
            async with self._session_maker() as session:
                result = await session.execute(select(Device).order_by(Device.name))
                return [DeviceRecord.from_orm(d) for d in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not list devices: {exc}") from exc

    async def _update(self, project_id: str, **values: object) -> None:
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    update(Project).where(Project.id == project_id).values(**values)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(
                f"Could not update {', '.join(values)} of project {project_id}: {exc}"
            ) from exc
        if result.rowcount == 0:
            raise ProjectNotFound(project_id)

    async def update_current_temperature(self, project_id: str, value: float) -> None:
        await self._update(project_id, current_temperature=value)

    async def update_outlet_active(self, project_id: str, active: bool) -> None:
        await self._update(project_id, outlet_active=active)

    async def update_control_mode(self, project_id: str, mode: ControlMode) -> None:
        await self._update(project_id, control_mode=ControlMode(mode))

    async def update_target_temperature(self, project_id: str, value: float) -> None:
        await self._update(project_id, target_temperature=value)


__all__ = ["DeviceRecord", "ProjectRecord", "ProjectStore", "SQLProjectStore"]
