"""FastAPI dependency injection helpers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from fermentwatch.config import SETTINGS, Settings
from fermentwatch.core.control_loop import ControlLoop
from fermentwatch.services.health_service import HealthService
from fermentwatch.services.outlet_service import OutletService
from fermentwatch.services.project_store import ProjectStore

# ---------------------------------------------------------------------------
# Settings dependency
# ---------------------------------------------------------------------------


def get_settings_dependency() -> Settings:
    return SETTINGS


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# ---------------------------------------------------------------------------
# Services wired during application startup
# ---------------------------------------------------------------------------


def _service(request: Request, name: str) -> object:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not initialised",
        )
    return value


def get_project_store(request: Request) -> ProjectStore:
    return _service(request, "project_store")  # type: ignore[return-value]


def get_outlet_service(request: Request) -> OutletService:
    return _service(request, "outlet_service")  # type: ignore[return-value]


def get_health_service(request: Request) -> HealthService:
    return _service(request, "health_service")  # type: ignore[return-value]


def get_control_loop(request: Request) -> ControlLoop:
    return _service(request, "control_loop")  # type: ignore[return-value]


StoreDep = Annotated[ProjectStore, Depends(get_project_store)]
OutletServiceDep = Annotated[OutletService, Depends(get_outlet_service)]
HealthServiceDep = Annotated[HealthService, Depends(get_health_service)]
ControlLoopDep = Annotated[ControlLoop, Depends(get_control_loop)]


__all__ = [
    "ControlLoopDep",
    "HealthServiceDep",
    "OutletServiceDep",
    "SettingsDep",
    "StoreDep",
    "get_control_loop",
    "get_health_service",
    "get_outlet_service",
    "get_project_store",
]
