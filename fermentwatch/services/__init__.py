"""FermentWatch application services."""

from .project_store import DeviceRecord, ProjectRecord, ProjectStore, SQLProjectStore

__all__ = [
    "DeviceRecord",
    "ProjectRecord",
    "ProjectStore",
    "SQLProjectStore",
]
