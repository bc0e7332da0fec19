"""System health checks for the hub, the time-series sink, sensors, outlets and the loop."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from fermentwatch.core.actuators import DirectAddressOutlet, HubEntityOutlet, resolve_outlet
from fermentwatch.core.control_loop import ControlLoop, parse_temperature
from fermentwatch.core.errors import FermentWatchError
from fermentwatch.integrations.ha_client import HAClient
from fermentwatch.integrations.shelly_client import ShellyClient
from fermentwatch.integrations.timeseries import InfluxRecorder
from fermentwatch.models.enums import HealthStatus
from fermentwatch.services.project_store import ProjectStore

logger = logging.getLogger(__name__)

SLOW_HUB_MS = 2000
UNAVAILABLE_STATES = frozenset({"unavailable", "unknown"})


@dataclass(slots=True)
class HealthCheckResult:
    service: str
    status: HealthStatus
    message: str
    checked_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class HealthReport:
    timestamp: datetime
    overall: HealthStatus
    checks: list[HealthCheckResult]


def _overall(checks: list[HealthCheckResult]) -> HealthStatus:
    if any(c.status == HealthStatus.error for c in checks):
        return HealthStatus.error
    if any(c.status == HealthStatus.warning for c in checks):
        return HealthStatus.warning
    return HealthStatus.ok


class HealthService:
    """Run every health check and keep the last report."""

    def __init__(
        self,
        *,
        store: ProjectStore,
        hub: HAClient,
        shelly: ShellyClient,
        recorder: InfluxRecorder,
        loop: ControlLoop | None = None,
    ) -> None:
        self._store = store
        self._hub = hub
        self._shelly = shelly
        self._recorder = recorder
        self._loop = loop
        self.last_report: HealthReport | None = None

    async def run_all_checks(self) -> HealthReport:
        checks = [
            await self.check_home_assistant(),
            await self.check_influxdb(),
            await self.check_sensors(),
            await self.check_outlets(),
            self.check_control_loop(),
        ]
        report = HealthReport(timestamp=datetime.now(UTC), overall=_overall(checks), checks=checks)
        self.last_report = report
        self._log_report(report)
        return report

    async def check_home_assistant(self) -> HealthCheckResult:
        started = time.monotonic()
        try:
            message = await self._hub.check_api()
        except FermentWatchError as exc:
            return HealthCheckResult("home_assistant", HealthStatus.error, f"Cannot reach Home Assistant: {exc}")
        latency_ms = int((time.monotonic() - started) * 1000)
        status = HealthStatus.warning if latency_ms > SLOW_HUB_MS else HealthStatus.ok
        return HealthCheckResult(
            "home_assistant",
            status,
            f"API accessible ({latency_ms}ms): {message}",
            details={"latency_ms": latency_ms},
        )

    async def check_influxdb(self) -> HealthCheckResult:
        if await self._recorder.ping():
            return HealthCheckResult("influxdb", HealthStatus.ok, "InfluxDB reachable")
        return HealthCheckResult("influxdb", HealthStatus.error, "Cannot reach InfluxDB")

    async def check_sensors(self) -> HealthCheckResult:
        try:
            projects = await self._store.list_projects()
        except FermentWatchError as exc:
            return HealthCheckResult("sensors", HealthStatus.error, f"Sensor check failed: {exc}")
        if not projects:
            return HealthCheckResult("sensors", HealthStatus.ok, "No active projects")

        results: dict[str, str] = {}
        for project in projects:
            try:
                device = (
                    await self._store.get_device(project.sensor_id) if project.sensor_id else None
                )
                if device is None or not device.ha_entity_id:
                    results[project.id] = "not configured"
                    continue
                raw = await self._hub.read_entity_state(device.ha_entity_id)
                parse_temperature(device.ha_entity_id, raw)
            except FermentWatchError as exc:
                results[project.id] = str(exc)
                continue
            results[project.id] = "ok"

        failing = {pid: msg for pid, msg in results.items() if msg != "ok"}
        if failing:
            return HealthCheckResult(
                "sensors",
                HealthStatus.error,
                f"{len(failing)} sensor(s) failing",
                details={"failing": failing},
            )
        return HealthCheckResult("sensors", HealthStatus.ok, f"{len(results)} sensor(s) OK")

    async def check_outlets(self) -> HealthCheckResult:
        try:
            projects = await self._store.list_projects()
        except FermentWatchError as exc:
            return HealthCheckResult("outlets", HealthStatus.error, f"Outlet check failed: {exc}")

        outlet_ids = sorted({p.outlet_id for p in projects if p.outlet_id})
        unavailable: dict[str, str] = {}
        for outlet_id in outlet_ids:
            try:
                target = resolve_outlet(await self._store.get_device(outlet_id), device_id=outlet_id)
                match target:
                    case HubEntityOutlet(entity_id=entity_id):
                        entity = await self._hub.get_entity(entity_id)
                        if entity.state in UNAVAILABLE_STATES:
                            unavailable[outlet_id] = f"{entity_id} is {entity.state}"
                    case DirectAddressOutlet(address=address):
                        await self._shelly.get_switch_status(address)
            except FermentWatchError as exc:
                unavailable[outlet_id] = str(exc)

        if unavailable:
            return HealthCheckResult(
                "outlets",
                HealthStatus.error,
                f"{len(unavailable)} outlet(s) unavailable",
                details={"unavailable": unavailable},
            )
        return HealthCheckResult("outlets", HealthStatus.ok, f"{len(outlet_ids)} outlet(s) available")

    def check_control_loop(self) -> HealthCheckResult:
        if self._loop is None:
            return HealthCheckResult("control_loop", HealthStatus.warning, "Control loop not configured")
        status = self._loop.status
        if not status.running:
            return HealthCheckResult("control_loop", HealthStatus.error, "Control loop not running")
        last = status.last_cycle
        if last is None or last.finished_at is None:
            return HealthCheckResult("control_loop", HealthStatus.ok, "Waiting for first cycle")
        age_s = (datetime.now(UTC) - last.finished_at).total_seconds()
        details = {"last_cycle_age_s": round(age_s, 1), "cycles": status.cycles_completed}
        if age_s > 3 * status.interval_s:
            return HealthCheckResult(
                "control_loop", HealthStatus.warning, f"Last cycle {age_s:.0f}s ago", details=details
            )
        return HealthCheckResult("control_loop", HealthStatus.ok, "Cycling normally", details=details)

    def _log_report(self, report: HealthReport) -> None:
        level = logging.INFO if report.overall == HealthStatus.ok else logging.WARNING
        logger.log(level, "System status: %s", report.overall.upper())
        for check in report.checks:
            logger.log(level, "  %s [%s]: %s", check.service, check.status, check.message)


__all__ = ["HealthCheckResult", "HealthReport", "HealthService"]
