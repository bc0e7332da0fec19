"""Control logic for FermentWatch: the hysteresis rule, outlet targets and the loop."""

from __future__ import annotations

from .errors import (
    ConfigurationError,
    DeviceUnavailable,
    FermentWatchError,
    HubUnavailable,
    MalformedSensorValue,
    PersistenceError,
    ProjectNotFound,
)
from .hysteresis import HEAT_THRESHOLD_C, decide, needs_actuation

__all__ = [
    "HEAT_THRESHOLD_C",
    "ConfigurationError",
    "DeviceUnavailable",
    "FermentWatchError",
    "HubUnavailable",
    "MalformedSensorValue",
    "PersistenceError",
    "ProjectNotFound",
    "decide",
    "needs_actuation",
]
