"""Project routes: listing, history and manual commands."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Body, Query

from fermentwatch.api.dependencies import OutletServiceDep, StoreDep
from fermentwatch.core.errors import ProjectNotFound
from fermentwatch.models.schemas import (
    ActuationEventResponse,
    ControlModeCommand,
    DensityCreate,
    OutletCommand,
    ProjectDetailResponse,
    ProjectResponse,
    SamplePoint,
    TargetTemperatureCommand,
)

router = APIRouter()


@router.get("", response_model=list[ProjectResponse])
async def list_projects(store: StoreDep) -> list[ProjectResponse]:
    projects = await store.list_projects()
    return [ProjectResponse.model_validate(p) for p in projects]


@router.get("/{project_id}", response_model=ProjectDetailResponse)
async def get_project(
    project_id: str,
    store: StoreDep,
    service: OutletServiceDep,
    start: Annotated[
        str, Query(description="Relative duration such as -7d, or an ISO timestamp")
    ] = "-30d",
) -> ProjectDetailResponse:
    """Project with its temperature, density and outlet history."""
    project = await store.get_project(project_id)
    if project is None:
        raise ProjectNotFound(project_id)
    temperatures, densities, events = await service.history(project_id, start)
    return ProjectDetailResponse(
        **ProjectResponse.model_validate(project).model_dump(),
        history=[SamplePoint.model_validate(s) for s in temperatures],
        density_history=[SamplePoint.model_validate(s) for s in densities],
        outlet_events=[ActuationEventResponse.model_validate(e) for e in events],
    )


@router.post("/{project_id}/outlet/toggle", response_model=ProjectResponse)
async def toggle_outlet(project_id: str, service: OutletServiceDep) -> ProjectResponse:
    project = await service.toggle_outlet(project_id)
    return ProjectResponse.model_validate(project)


@router.put("/{project_id}/outlet", response_model=ProjectResponse)
async def set_outlet(
    project_id: str, payload: OutletCommand, service: OutletServiceDep
) -> ProjectResponse:
    project = await service.set_outlet(project_id, payload.active)
    return ProjectResponse.model_validate(project)


@router.put("/{project_id}/control-mode", response_model=ProjectResponse)
async def update_control_mode(
    project_id: str,
    service: OutletServiceDep,
    payload: Annotated[ControlModeCommand | None, Body()] = None,
) -> ProjectResponse:
    if payload is None or payload.mode is None:
        project = await service.toggle_control_mode(project_id)
    else:
        project = await service.set_control_mode(project_id, payload.mode)
    return ProjectResponse.model_validate(project)


@router.put("/{project_id}/target", response_model=ProjectResponse)
async def update_target(
    project_id: str, payload: TargetTemperatureCommand, service: OutletServiceDep
) -> ProjectResponse:
    project = await service.set_target_temperature(project_id, payload.target_temperature)
    return ProjectResponse.model_validate(project)


@router.post("/{project_id}/density", response_model=SamplePoint, status_code=201)
async def add_density(
    project_id: str, payload: DensityCreate, service: OutletServiceDep
) -> SamplePoint:
    sample = await service.record_density(project_id, payload.density, payload.timestamp)
    return SamplePoint.model_validate(sample)
