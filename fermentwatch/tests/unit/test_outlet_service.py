"""Tests for fermentwatch.services.outlet_service: manual project commands."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from conftest import InMemoryProjectStore, make_outlet, make_project

from fermentwatch.core.actuators import DirectAddressOutlet, HubEntityOutlet
from fermentwatch.core.errors import (
    ConfigurationError,
    HubUnavailable,
    PersistenceError,
    ProjectNotFound,
)
from fermentwatch.integrations.timeseries import Sample
from fermentwatch.models.enums import ActuationSource, ControlMode, SampleKind
from fermentwatch.services.outlet_service import MAX_TARGET_C, MIN_TARGET_C, OutletService

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=UTC)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def service(
    store: InMemoryProjectStore, outlets: AsyncMock, recorder: AsyncMock
) -> OutletService:
    store.add_project(make_project(current=19.0))
    return OutletService(store, outlets, recorder)


# ===================================================================
# Outlet switching
# ===================================================================


class TestToggleOutlet:
    async def test_turns_on(
        self,
        service: OutletService,
        store: InMemoryProjectStore,
        outlets: AsyncMock,
        recorder: AsyncMock,
    ) -> None:
        project = await service.toggle_outlet("p1")

        outlets.switch.assert_awaited_once_with(HubEntityOutlet("o1", "switch.heater"), True)
        recorder.write_actuation_event.assert_awaited_once_with(
            "p1", True, ActuationSource.manual, 19.0
        )
        assert project.outlet_active is True
        assert store.projects["p1"].outlet_active is True

    async def test_toggles_back_off(self, service: OutletService, outlets: AsyncMock) -> None:
        await service.toggle_outlet("p1")
        project = await service.toggle_outlet("p1")

        assert project.outlet_active is False
        assert outlets.switch.await_args_list[-1].args == (
            HubEntityOutlet("o1", "switch.heater"),
            False,
        )

    async def test_direct_outlet(
        self, service: OutletService, store: InMemoryProjectStore, outlets: AsyncMock
    ) -> None:
        store.add_device(make_outlet("o2", entity_id=None, address="10.0.0.4"))
        store.add_project(make_project("p2", outlet_id="o2"))

        await service.toggle_outlet("p2")

        outlets.switch.assert_awaited_once_with(DirectAddressOutlet("o2", "10.0.0.4"), True)

    async def test_unknown_project(self, service: OutletService) -> None:
        with pytest.raises(ProjectNotFound):
            await service.toggle_outlet("missing")

    async def test_no_outlet_configured(
        self, service: OutletService, store: InMemoryProjectStore, outlets: AsyncMock
    ) -> None:
        store.add_project(make_project("p3", outlet_id=None))

        with pytest.raises(ConfigurationError):
            await service.toggle_outlet("p3")
        outlets.switch.assert_not_awaited()

    async def test_switch_failure_keeps_flag(
        self,
        service: OutletService,
        store: InMemoryProjectStore,
        outlets: AsyncMock,
        recorder: AsyncMock,
    ) -> None:
        outlets.switch.side_effect = HubUnavailable("hub down")

        with pytest.raises(HubUnavailable):
            await service.toggle_outlet("p1")

        assert store.projects["p1"].outlet_active is False
        recorder.write_actuation_event.assert_not_awaited()

    async def test_event_write_failure_is_not_fatal(
        self, service: OutletService, recorder: AsyncMock
    ) -> None:
        recorder.write_actuation_event.side_effect = PersistenceError("influx down")

        project = await service.toggle_outlet("p1")

        assert project.outlet_active is True


class TestSetOutlet:
    async def test_same_state_is_noop(
        self, service: OutletService, outlets: AsyncMock, recorder: AsyncMock
    ) -> None:
        project = await service.set_outlet("p1", False)

        assert project.outlet_active is False
        outlets.switch.assert_not_awaited()
        recorder.write_actuation_event.assert_not_awaited()

    async def test_new_state_switches(self, service: OutletService, outlets: AsyncMock) -> None:
        project = await service.set_outlet("p1", True)

        assert project.outlet_active is True
        outlets.switch.assert_awaited_once()


# ===================================================================
# Control mode and target
# ===================================================================


class TestControlMode:
    async def test_toggle(self, service: OutletService) -> None:
        project = await service.toggle_control_mode("p1")
        assert project.control_mode == ControlMode.manual

        project = await service.toggle_control_mode("p1")
        assert project.control_mode == ControlMode.automatic

    async def test_set_explicit(self, service: OutletService) -> None:
        project = await service.set_control_mode("p1", ControlMode.manual)
        assert project.control_mode == ControlMode.manual

    async def test_set_unknown_project(self, service: OutletService) -> None:
        with pytest.raises(ProjectNotFound):
            await service.set_control_mode("missing", ControlMode.manual)


class TestTargetTemperature:
    async def test_updates_target(self, service: OutletService) -> None:
        project = await service.set_target_temperature("p1", 18.5)
        assert project.target_temperature == 18.5

    @pytest.mark.parametrize("value", [MIN_TARGET_C - 0.1, MAX_TARGET_C + 0.1])
    async def test_out_of_range(self, service: OutletService, value: float) -> None:
        with pytest.raises(ValueError):
            await service.set_target_temperature("p1", value)


# ===================================================================
# Density and history
# ===================================================================


class TestDensity:
    async def test_records_sample(self, service: OutletService, recorder: AsyncMock) -> None:
        await service.record_density("p1", 1.052)

        recorder.write_sample.assert_awaited_once_with("p1", SampleKind.density, 1.052, None)

    async def test_rejects_non_positive(self, service: OutletService, recorder: AsyncMock) -> None:
        with pytest.raises(ValueError):
            await service.record_density("p1", 0)
        recorder.write_sample.assert_not_awaited()

    async def test_unknown_project(self, service: OutletService) -> None:
        with pytest.raises(ProjectNotFound):
            await service.record_density("missing", 1.01)


class TestHistory:
    async def test_collects_all_series(self, service: OutletService, recorder: AsyncMock) -> None:
        recorder.query_samples.return_value = []
        recorder.query_actuation_events.return_value = []

        temperatures, densities, events = await service.history("p1", "-7d")

        assert (temperatures, densities, events) == ([], [], [])
        recorder.query_samples.assert_any_await("p1", SampleKind.temperature, "-7d")
        recorder.query_samples.assert_any_await("p1", SampleKind.density, "-7d")
        recorder.query_actuation_events.assert_awaited_once_with("p1", "-7d")

    async def test_returns_samples(self, service: OutletService, recorder: AsyncMock) -> None:
        recorder.query_samples.return_value = [
            Sample(timestamp=T0, project_id="p1", kind=SampleKind.temperature, value=19.0)
        ]
        recorder.query_actuation_events.return_value = []

        temperatures, _, _ = await service.history("p1")

        assert temperatures[0].value == 19.0
