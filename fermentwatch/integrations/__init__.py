"""FermentWatch integration clients."""

from .ha_client import EntityState, HAClient
from .shelly_client import ShellyClient
from .timeseries import ActuationEvent, InfluxRecorder, Sample

__all__ = [
    "ActuationEvent",
    "EntityState",
    "HAClient",
    "InfluxRecorder",
    "Sample",
    "ShellyClient",
]
