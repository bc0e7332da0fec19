"""Domain enums for FermentWatch database models."""

from enum import StrEnum


class DeviceKind(StrEnum):
    sensor = "sensor"
    outlet = "outlet"


class ControlMode(StrEnum):
    automatic = "automatic"
    manual = "manual"


class ActuationSource(StrEnum):
    automatic = "automatic"
    manual = "manual"


class SampleKind(StrEnum):
    temperature = "temperature"
    humidity = "humidity"
    density = "density"


class FermentationType(StrEnum):
    beer = "beer"
    wine = "wine"
    cheese = "cheese"
    bread = "bread"


class LoopStage(StrEnum):
    """Stage of per-project processing, used to tag log records."""

    resolve = "resolve"
    read = "read"
    record = "record"
    decide = "decide"
    actuate = "actuate"


class HealthStatus(StrEnum):
    ok = "ok"
    warning = "warning"
    error = "error"
