"""API route registration for FermentWatch."""

from fastapi import APIRouter

from . import projects, system

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(system.router, prefix="/system", tags=["system"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])


__all__ = [
    "api_router",
    "projects",
    "system",
]
