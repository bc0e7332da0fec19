"""Pydantic schemas for FermentWatch API payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import ActuationSource, ControlMode, HealthStatus, SampleKind


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    sensor_id: str | None
    outlet_id: str | None
    target_temperature: float
    current_temperature: float | None
    outlet_active: bool
    control_mode: ControlMode
    created_at: datetime | None = None


class SamplePoint(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    kind: SampleKind
    value: float


class ActuationEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    state: bool
    source: ActuationSource
    temperature_at_change: float | None = None


class ProjectDetailResponse(ProjectResponse):
    history: list[SamplePoint] = Field(default_factory=list)
    density_history: list[SamplePoint] = Field(default_factory=list)
    outlet_events: list[ActuationEventResponse] = Field(default_factory=list)


class OutletCommand(BaseModel):
    model_config = ConfigDict(extra="forbid")

    active: bool


class ControlModeCommand(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: ControlMode | None = Field(
        default=None, description="Mode to set; omitted means toggle the current mode"
    )


class TargetTemperatureCommand(BaseModel):
    model_config = ConfigDict(extra="forbid")

    target_temperature: float


class DensityCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    density: float = Field(gt=0)
    timestamp: datetime | None = None


class HealthCheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    service: str
    status: HealthStatus
    message: str
    checked_at: datetime
    details: dict[str, Any] = Field(default_factory=dict)


class HealthReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    overall: HealthStatus
    checks: list[HealthCheckResponse]


class CycleReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    started_at: datetime
    finished_at: datetime | None
    duration_s: float | None
    processed: int
    skipped: int
    actuations: int
    errors: int


class LoopStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    running: bool
    interval_s: float
    cycles_completed: int
    skipped_overlaps: int
    last_cycle: CycleReportResponse | None = None
