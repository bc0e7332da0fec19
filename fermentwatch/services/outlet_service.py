"""Manual project commands: outlet switching, control mode, target and density."""

from __future__ import annotations

import logging
from datetime import datetime

from fermentwatch.core.actuators import OutletDriver, resolve_outlet
from fermentwatch.core.errors import PersistenceError, ProjectNotFound
from fermentwatch.integrations.timeseries import ActuationEvent, InfluxRecorder, Sample
from fermentwatch.models.enums import ActuationSource, ControlMode, SampleKind
from fermentwatch.services.project_store import ProjectRecord, ProjectStore

logger = logging.getLogger(__name__)

MIN_TARGET_C = -5.0
MAX_TARGET_C = 45.0


class OutletService:
    """Apply user commands to a project with the same rules the control loop follows."""

    def __init__(
        self,
        store: ProjectStore,
        outlets: OutletDriver,
        recorder: InfluxRecorder,
    ) -> None:
        self._store = store
        self._outlets = outlets
        self._recorder = recorder

    async def _require(self, project_id: str) -> ProjectRecord:
        project = await self._store.get_project(project_id)
        if project is None:
            raise ProjectNotFound(project_id)
        return project

    async def toggle_outlet(self, project_id: str) -> ProjectRecord:
        """Flip the outlet from its last commanded state."""
        project = await self._require(project_id)
        return await self._switch(project, not project.outlet_active)

    async def set_outlet(self, project_id: str, active: bool) -> ProjectRecord:
        """Command an explicit state; nothing happens if it is already commanded."""
        project = await self._require(project_id)
        if project.outlet_active == active:
            return project
        return await self._switch(project, active)

    async def _switch(self, project: ProjectRecord, active: bool) -> ProjectRecord:
        outlet = await self._store.get_device(project.outlet_id) if project.outlet_id else None
        target = resolve_outlet(outlet, device_id=project.outlet_id)
        await self._outlets.switch(target, active)
        logger.info(
            "Project %s: outlet manually set %s via %s",
            project.id,
            "ON" if active else "OFF",
            target.describe(),
        )
        await self._store.update_outlet_active(project.id, active)
        try:
            await self._recorder.write_actuation_event(
                project.id, active, ActuationSource.manual, project.current_temperature
            )
        except PersistenceError:
            # The outlet already switched and the flag is stored; only history is short.
            logger.exception("Manual actuation of project %s not recorded", project.id)
        return await self._require(project.id)

    async def toggle_control_mode(self, project_id: str) -> ProjectRecord:
        project = await self._require(project_id)
        new_mode = (
            ControlMode.manual if project.control_mode == ControlMode.automatic else ControlMode.automatic
        )
        return await self.set_control_mode(project_id, new_mode)

    async def set_control_mode(self, project_id: str, mode: ControlMode) -> ProjectRecord:
        await self._store.update_control_mode(project_id, ControlMode(mode))
        logger.info("Project %s: control mode -> %s", project_id, mode)
        return await self._require(project_id)

    async def set_target_temperature(self, project_id: str, value: float) -> ProjectRecord:
        if not MIN_TARGET_C <= value <= MAX_TARGET_C:
            raise ValueError(
                f"Target temperature must be between {MIN_TARGET_C} and {MAX_TARGET_C}°C, got {value}"
            )
        await self._store.update_target_temperature(project_id, value)
        logger.info("Project %s: target -> %.1f°C", project_id, value)
        return await self._require(project_id)

    async def record_density(
        self, project_id: str, value: float, timestamp: datetime | None = None
    ) -> Sample:
        if value <= 0:
            raise ValueError(f"Density must be positive, got {value}")
        await self._require(project_id)
        return await self._recorder.write_sample(project_id, SampleKind.density, value, timestamp)

    async def history(
        self, project_id: str, start: str = "-30d"
    ) -> tuple[list[Sample], list[Sample], list[ActuationEvent]]:
        """Temperature samples, density samples and outlet events for ``project_id``."""
        await self._require(project_id)
        temperatures = await self._recorder.query_samples(project_id, SampleKind.temperature, start)
        densities = await self._recorder.query_samples(project_id, SampleKind.density, start)
        events = await self._recorder.query_actuation_events(project_id, start)
        return temperatures, densities, events


__all__ = ["MAX_TARGET_C", "MIN_TARGET_C", "OutletService"]
