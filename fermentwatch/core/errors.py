"""Error taxonomy shared by the control loop, its clients and the API.

None of these is fatal: the control loop catches each one per project and
stage, logs it and moves on to the next project or the next cycle.
"""

from __future__ import annotations


class FermentWatchError(Exception):
    """Base exception for FermentWatch."""


class HubUnavailable(FermentWatchError):
    """Home Assistant could not be reached, timed out, or answered non-2xx."""


class DeviceUnavailable(FermentWatchError):
    """A directly addressed outlet could not be reached or rejected the call."""


class MalformedSensorValue(FermentWatchError):
    """The hub returned a sensor state that is not a number."""

    def __init__(self, entity_id: str, raw_value: str) -> None:
        super().__init__(f"Non-numeric state {raw_value!r} for {entity_id}")
        self.entity_id = entity_id
        self.raw_value = raw_value


class PersistenceError(FermentWatchError):
    """The project store or the time-series sink rejected a read or write."""


class ConfigurationError(FermentWatchError):
    """A project or device is configured in a way that makes an operation impossible."""


class ProjectNotFound(FermentWatchError, LookupError):
    """No project exists with the requested id."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project {project_id} not found")
        self.project_id = project_id


__all__ = [
    "ConfigurationError",
    "DeviceUnavailable",
    "FermentWatchError",
    "HubUnavailable",
    "MalformedSensorValue",
    "PersistenceError",
    "ProjectNotFound",
]
