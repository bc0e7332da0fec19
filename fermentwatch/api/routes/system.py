"""System-level FastAPI routes for FermentWatch."""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, status

from fermentwatch.api.dependencies import ControlLoopDep, HealthServiceDep, SettingsDep
from fermentwatch.models.schemas import HealthReportResponse, LoopStatusResponse

router = APIRouter()


@router.get("/health", response_model=dict[str, str])
async def health_check(settings: SettingsDep) -> dict[str, str]:
    return {
        "status": "ok",
        "name": settings.app_name,
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/health/report", response_model=HealthReportResponse)
async def run_health_report(health: HealthServiceDep) -> HealthReportResponse:
    """Run every health check now."""
    report = await health.run_all_checks()
    return HealthReportResponse.model_validate(report)


@router.get("/health/last", response_model=HealthReportResponse)
async def last_health_report(health: HealthServiceDep) -> HealthReportResponse:
    if health.last_report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="no_report_yet")
    return HealthReportResponse.model_validate(health.last_report)


@router.get("/loop", response_model=LoopStatusResponse)
async def loop_status(loop: ControlLoopDep) -> LoopStatusResponse:
    return LoopStatusResponse.model_validate(loop.status)
