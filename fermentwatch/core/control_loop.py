"""Temperature control loop for fermentation projects.

Each cycle re-reads every project, samples its sensor through Home Assistant,
records the value, and for projects in automatic mode switches the heating
outlet when the desired state differs from the stored one. Failures are
contained per project and per stage; the loop itself never raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TypeVar

from fermentwatch.core.actuators import HubEntityOutlet, OutletDriver, resolve_outlet
from fermentwatch.core.errors import (
    ConfigurationError,
    DeviceUnavailable,
    FermentWatchError,
    HubUnavailable,
    MalformedSensorValue,
    PersistenceError,
)
from fermentwatch.core.hysteresis import decide, needs_actuation
from fermentwatch.integrations.ha_client import HAClient
from fermentwatch.integrations.timeseries import InfluxRecorder
from fermentwatch.models.enums import ActuationSource, DeviceKind, LoopStage, SampleKind
from fermentwatch.services.project_store import ProjectRecord, ProjectStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_INTERVAL_S = 30.0


class ProjectOutcome(StrEnum):
    """How processing a single project ended within one cycle."""

    processed = "processed"
    skipped = "skipped"
    actuated = "actuated"
    failed = "failed"


@dataclass(slots=True)
class CycleReport:
    started_at: datetime
    finished_at: datetime | None = None
    processed: int = 0
    skipped: int = 0
    actuations: int = 0
    errors: int = 0

    @property
    def duration_s(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass(slots=True)
class LoopStatus:
    running: bool = False
    interval_s: float = DEFAULT_INTERVAL_S
    cycles_completed: int = 0
    skipped_overlaps: int = 0
    last_cycle: CycleReport | None = None
    history: list[CycleReport] = field(default_factory=list)


def parse_temperature(entity_id: str, raw: str) -> float:
    """Parse a hub state string as a temperature, rejecting non-finite values."""
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedSensorValue(entity_id, raw) from exc
    if value != value or value in (float("inf"), float("-inf")):
        raise MalformedSensorValue(entity_id, raw)
    return value


class ControlLoop:
    """Owned periodic driver for the temperature control cycle.

    ``start()`` runs one cycle immediately and then one every ``interval_s``;
    ``stop()`` cancels the schedule and lets an in-flight cycle finish. Cycles
    are serialized: ``run_cycle`` never overlaps itself.
    """

    HISTORY_LIMIT = 20

    def __init__(
        self,
        *,
        store: ProjectStore,
        hub: HAClient,
        outlets: OutletDriver,
        recorder: InfluxRecorder,
        interval_s: float = DEFAULT_INTERVAL_S,
        call_timeout_s: float = 5.0,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._store = store
        self._hub = hub
        self._outlets = outlets
        self._recorder = recorder
        self._interval_s = interval_s
        self._call_timeout_s = call_timeout_s
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._status = LoopStatus(interval_s=interval_s)
        # (project_id, device_id) pairs whose misconfiguration was already reported
        self._reported_config: set[tuple[str, str | None]] = set()

    # -- lifecycle ------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def status(self) -> LoopStatus:
        self._status.running = self.running
        return self._status

    def start(self) -> None:
        """Schedule an immediate cycle and the recurring ones. No-op if running."""
        if self.running:
            logger.debug("Control loop already running")
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="fermentwatch-control-loop")
        logger.info("Control loop started (interval=%.1fs)", self._interval_s)

    async def stop(self) -> None:
        """Stop scheduling cycles; an in-flight cycle runs to completion first."""
        self._stop_event.set()
        task, self._task = self._task, None
        if task is None:
            return
        await task
        logger.info("Control loop stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception:
                # run_cycle contains its own failures; this guards the schedule itself.
                logger.exception("Control cycle crashed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_s)
            except TimeoutError:
                continue

    # -- cycle ----------------------------------------------------------------

    async def run_cycle(self) -> CycleReport | None:
        """Run one cycle over all projects; returns ``None`` if one is already running."""
        if self._cycle_lock.locked():
            self._status.skipped_overlaps += 1
            logger.warning("Previous control cycle still running; skipping this one")
            return None

        async with self._cycle_lock:
            report = CycleReport(started_at=datetime.now(UTC))
            try:
                projects = await self._bounded(self._store.list_projects(), PersistenceError)
            except PersistenceError as exc:
                logger.error("Could not list projects, cycle skipped: %s", exc)
                report.errors += 1
                return self._finish(report)

            logger.debug("Polling %d project(s)", len(projects))
            results = await asyncio.gather(
                *(self._process_project(project.id) for project in projects),
                return_exceptions=True,
            )
            for project, result in zip(projects, results, strict=True):
                if isinstance(result, BaseException):
                    report.errors += 1
                    logger.error(
                        "Unhandled error processing project %s",
                        project.id,
                        exc_info=result,
                        extra={"project_id": project.id},
                    )
                elif result == ProjectOutcome.actuated:
                    report.processed += 1
                    report.actuations += 1
                elif result == ProjectOutcome.processed:
                    report.processed += 1
                elif result == ProjectOutcome.failed:
                    report.errors += 1
                else:
                    report.skipped += 1
            return self._finish(report)

    def _finish(self, report: CycleReport) -> CycleReport:
        report.finished_at = datetime.now(UTC)
        self._status.cycles_completed += 1
        self._status.last_cycle = report
        self._status.history.append(report)
        del self._status.history[: -self.HISTORY_LIMIT]
        logger.info(
            "Control cycle done in %.2fs: processed=%d skipped=%d actuations=%d errors=%d",
            report.duration_s or 0.0,
            report.processed,
            report.skipped,
            report.actuations,
            report.errors,
        )
        return report

    async def _bounded(self, aw: Awaitable[T], error: type[FermentWatchError]) -> T:
        """Await ``aw`` under the per-call timeout, mapping expiry to ``error``."""
        try:
            return await asyncio.wait_for(aw, timeout=self._call_timeout_s)
        except TimeoutError as exc:
            raise error(f"Call exceeded {self._call_timeout_s:.1f}s") from exc

    def _log(
        self, level: int, project_id: str, stage: LoopStage, msg: str, *args: object
    ) -> None:
        logger.log(
            level,
            "[project=%s stage=%s] " + msg,
            project_id,
            stage,
            *args,
            extra={"project_id": project_id, "stage": str(stage)},
        )

    def _config_problem(self, project_id: str, device_id: str | None, exc: Exception) -> None:
        key = (project_id, device_id)
        if key in self._reported_config:
            self._log(logging.DEBUG, project_id, LoopStage.resolve, "%s", exc)
            return
        self._reported_config.add(key)
        self._log(logging.WARNING, project_id, LoopStage.resolve, "%s", exc)

    def _config_ok(self, project_id: str, device_id: str | None) -> None:
        self._reported_config.discard((project_id, device_id))

    # -- per project ----------------------------------------------------------

    async def _process_project(self, project_id: str) -> ProjectOutcome:
        try:
            project = await self._bounded(self._store.get_project(project_id), PersistenceError)
        except PersistenceError as exc:
            self._log(logging.ERROR, project_id, LoopStage.resolve, "Could not re-read project: %s", exc)
            return ProjectOutcome.failed
        if project is None:
            self._log(logging.INFO, project_id, LoopStage.resolve, "Project vanished, skipping")
            return ProjectOutcome.skipped

        temperature = await self._sample(project)
        if temperature is None:
            return ProjectOutcome.skipped

        if not project.is_automatic:
            return ProjectOutcome.processed
        return await self._regulate(project, temperature)

    async def _sample(self, project: ProjectRecord) -> float | None:
        """Read, record and store the project's temperature; ``None`` means skip."""
        try:
            device = (
                await self._bounded(self._store.get_device(project.sensor_id), PersistenceError)
                if project.sensor_id
                else None
            )
        except PersistenceError as exc:
            self._log(logging.ERROR, project.id, LoopStage.resolve, "Sensor lookup failed: %s", exc)
            return None
        if device is None or device.kind != DeviceKind.sensor or not device.ha_entity_id:
            reason = (
                "not found"
                if device is None
                else "is not a sensor" if device.kind != DeviceKind.sensor else "has no entity id"
            )
            self._config_problem(
                project.id,
                project.sensor_id,
                ConfigurationError(f"Sensor {project.sensor_id or '<unset>'} {reason}"),
            )
            return None
        self._config_ok(project.id, project.sensor_id)

        try:
            raw = await self._bounded(self._hub.read_entity_state(device.ha_entity_id), HubUnavailable)
            temperature = parse_temperature(device.ha_entity_id, raw)
        except HubUnavailable as exc:
            self._log(logging.ERROR, project.id, LoopStage.read, "Sensor read failed: %s", exc)
            return None
        except MalformedSensorValue as exc:
            self._log(
                logging.WARNING,
                project.id,
                LoopStage.read,
                "Invalid temperature %r from %s",
                exc.raw_value,
                exc.entity_id,
            )
            return None

        self._log(logging.DEBUG, project.id, LoopStage.read, "%.2f°C", temperature)

        try:
            await self._bounded(
                self._recorder.write_sample(project.id, SampleKind.temperature, temperature),
                PersistenceError,
            )
        except PersistenceError as exc:
            self._log(logging.ERROR, project.id, LoopStage.record, "Sample not recorded: %s", exc)

        try:
            await self._bounded(
                self._store.update_current_temperature(project.id, temperature),
                PersistenceError,
            )
        except FermentWatchError as exc:
            self._log(logging.ERROR, project.id, LoopStage.record, "Temperature not stored: %s", exc)

        return temperature

    async def _regulate(self, project: ProjectRecord, temperature: float) -> ProjectOutcome:
        desired = decide(temperature, project.target_temperature, project.outlet_active)
        if not needs_actuation(desired, project.outlet_active):
            return ProjectOutcome.processed

        self._log(
            logging.INFO,
            project.id,
            LoopStage.decide,
            "%.2f°C vs target %.2f°C, outlet -> %s",
            temperature,
            project.target_temperature,
            "ON" if desired else "OFF",
        )

        try:
            device = (
                await self._bounded(self._store.get_device(project.outlet_id), PersistenceError)
                if project.outlet_id
                else None
            )
            target = resolve_outlet(device, device_id=project.outlet_id)
        except ConfigurationError as exc:
            self._config_problem(project.id, project.outlet_id, exc)
            return ProjectOutcome.failed
        except PersistenceError as exc:
            self._log(logging.ERROR, project.id, LoopStage.resolve, "Outlet lookup failed: %s", exc)
            return ProjectOutcome.failed
        self._config_ok(project.id, project.outlet_id)

        try:
            error = HubUnavailable if isinstance(target, HubEntityOutlet) else DeviceUnavailable
            await self._bounded(self._outlets.switch(target, desired), error)
        except (HubUnavailable, DeviceUnavailable) as exc:
            self._log(
                logging.ERROR,
                project.id,
                LoopStage.actuate,
                "Switching %s failed: %s",
                target.describe(),
                exc,
            )
            return ProjectOutcome.failed

        try:
            await self._bounded(
                self._store.update_outlet_active(project.id, desired), PersistenceError
            )
        except FermentWatchError as exc:
            self._log(logging.ERROR, project.id, LoopStage.record, "Outlet flag not stored: %s", exc)

        try:
            await self._bounded(
                self._recorder.write_actuation_event(
                    project.id, desired, ActuationSource.automatic, temperature
                ),
                PersistenceError,
            )
        except PersistenceError as exc:
            self._log(logging.ERROR, project.id, LoopStage.record, "Actuation event lost: %s", exc)

        return ProjectOutcome.actuated


__all__ = [
    "ControlLoop",
    "CycleReport",
    "LoopStatus",
    "ProjectOutcome",
    "parse_temperature",
]
