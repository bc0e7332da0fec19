"""InfluxDB time-series recorder for samples and outlet actuation events.

Write path: one point per sample (measurement = sample kind, tag
``project_id``, float field ``value``) and one point per outlet transition
(measurement ``outlet_state``, tags ``project_id``/``source``, fields
``state``/``temperature_at_change``). Read path: Flux range queries used by
the history endpoints.

The influxdb-client API is blocking, so every call runs in a worker thread
and is bounded by the client's own timeout.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from influxdb_client import InfluxDBClient, Point, WritePrecision
from influxdb_client.client.write_api import SYNCHRONOUS

from fermentwatch.core.errors import PersistenceError
from fermentwatch.models.enums import ActuationSource, SampleKind

logger = logging.getLogger(__name__)

ACTUATION_MEASUREMENT = "outlet_state"

_DURATION_RE = re.compile(r"-?\d+(ns|us|ms|s|m|h|d|w|mo|y)")


@dataclass(frozen=True, slots=True)
class Sample:
    timestamp: datetime
    project_id: str
    kind: SampleKind
    value: float


@dataclass(frozen=True, slots=True)
class ActuationEvent:
    timestamp: datetime
    project_id: str
    state: bool
    source: ActuationSource
    temperature_at_change: float | None


def _flux_string(value: str) -> str:
    """Quote ``value`` as a Flux string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def flux_time(value: str) -> str:
    """Validate a range bound: a relative duration (``-30d``) or an ISO timestamp.

    Raises:
        ValueError: for anything else, so user input never reaches Flux verbatim.
    """
    value = value.strip()
    if _DURATION_RE.fullmatch(value):
        return value
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(f"Invalid time range bound: {value!r}") from exc
    return _utc(parsed).astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _utc(timestamp: datetime | None) -> datetime:
    if timestamp is None:
        return datetime.now(UTC)
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=UTC)
    return timestamp


class InfluxRecorder:
    """Append-only sink for samples and actuation events, with range queries."""

    def __init__(
        self,
        url: str,
        token: str,
        org: str,
        bucket: str,
        *,
        timeout_ms: int = 5000,
        client: InfluxDBClient | None = None,
    ) -> None:
        self._org = org
        self._bucket = bucket
        self._client = client or InfluxDBClient(url=url, token=token, org=org, timeout=timeout_ms)
        self._write_api = self._client.write_api(write_options=SYNCHRONOUS)
        self._query_api = self._client.query_api()

    # -- write contract -------------------------------------------------------

    async def _write(self, point: Point, description: str) -> None:
        try:
            await asyncio.to_thread(
                self._write_api.write, bucket=self._bucket, org=self._org, record=point
            )
        except Exception as exc:
            raise PersistenceError(f"InfluxDB rejected {description}: {exc}") from exc

    async def write_sample(
        self,
        project_id: str,
        kind: SampleKind,
        value: float,
        timestamp: datetime | None = None,
    ) -> Sample:
        """Append one numeric sample and return what was written."""
        sample = Sample(
            timestamp=_utc(timestamp), project_id=project_id, kind=SampleKind(kind), value=value
        )
        point = (
            Point(sample.kind.value)
            .tag("project_id", project_id)
            .field("value", float(value))
            .time(sample.timestamp, WritePrecision.MS)
        )
        await self._write(point, f"{sample.kind} sample for project {project_id}")
        logger.debug("Recorded %s=%.2f for project %s", sample.kind, value, project_id)
        return sample

    async def write_actuation_event(
        self,
        project_id: str,
        state: bool,
        source: ActuationSource,
        temperature_at_change: float | None,
        timestamp: datetime | None = None,
    ) -> ActuationEvent:
        """Append one outlet transition and return what was written."""
        event = ActuationEvent(
            timestamp=_utc(timestamp),
            project_id=project_id,
            state=state,
            source=ActuationSource(source),
            temperature_at_change=temperature_at_change,
        )
        point = (
            Point(ACTUATION_MEASUREMENT)
            .tag("project_id", project_id)
            .tag("source", event.source.value)
            .field("state", bool(state))
            .time(event.timestamp, WritePrecision.MS)
        )
        if temperature_at_change is not None:
            point = point.field("temperature_at_change", float(temperature_at_change))
        await self._write(point, f"actuation event for project {project_id}")
        logger.info(
            "Recorded outlet %s (%s) for project %s",
            "ON" if state else "OFF",
            event.source,
            project_id,
        )
        return event

    # -- read contract --------------------------------------------------------

    async def _query(self, flux: str) -> list[Any]:
        try:
            tables = await asyncio.to_thread(self._query_api.query, flux, org=self._org)
        except Exception as exc:
            raise PersistenceError(f"InfluxDB query failed: {exc}") from exc
        return [record for table in tables for record in table.records]

    def _range_clause(self, start: str, stop: str | None) -> str:
        if stop:
            return f"range(start: {flux_time(start)}, stop: {flux_time(stop)})"
        return f"range(start: {flux_time(start)})"

    async def query_samples(
        self,
        project_id: str,
        kind: SampleKind,
        start: str = "-30d",
        stop: str | None = None,
    ) -> list[Sample]:
        """Return samples of ``kind`` for a project in time order."""
        kind = SampleKind(kind)
        flux = f"""
            from(bucket: {_flux_string(self._bucket)})
              |> {self._range_clause(start, stop)}
              |> filter(fn: (r) => r._measurement == {_flux_string(kind.value)})
              |> filter(fn: (r) => r.project_id == {_flux_string(project_id)})
              |> filter(fn: (r) => r._field == "value")
              |> sort(columns: ["_time"])
        """
        records = await self._query(flux)
        return [
            Sample(
                timestamp=record.get_time(),
                project_id=project_id,
                kind=kind,
                value=float(record.get_value()),
            )
            for record in records
        ]

    async def latest_sample(
        self, project_id: str, kind: SampleKind, window: str = "-1h"
    ) -> Sample | None:
        """Return the most recent sample inside ``window``, if any."""
        kind = SampleKind(kind)
        flux = f"""
            from(bucket: {_flux_string(self._bucket)})
              |> range(start: {flux_time(window)})
              |> filter(fn: (r) => r._measurement == {_flux_string(kind.value)})
              |> filter(fn: (r) => r.project_id == {_flux_string(project_id)})
              |> filter(fn: (r) => r._field == "value")
              |> last()
        """
        records = await self._query(flux)
        if not records:
            return None
        record = records[-1]
        return Sample(
            timestamp=record.get_time(),
            project_id=project_id,
            kind=kind,
            value=float(record.get_value()),
        )

    async def query_actuation_events(
        self, project_id: str, start: str = "-30d", stop: str | None = None
    ) -> list[ActuationEvent]:
        """Return outlet transitions for a project in time order."""
        flux = f"""
            from(bucket: {_flux_string(self._bucket)})
              |> {self._range_clause(start, stop)}
              |> filter(fn: (r) => r._measurement == {_flux_string(ACTUATION_MEASUREMENT)})
              |> filter(fn: (r) => r.project_id == {_flux_string(project_id)})
              |> pivot(rowKey: ["_time"], columnKey: ["_field"], valueColumn: "_value")
              |> sort(columns: ["_time"])
        """
        events: list[ActuationEvent] = []
        for record in await self._query(flux):
            values = record.values
            temperature = values.get("temperature_at_change")
            events.append(
                ActuationEvent(
                    timestamp=record.get_time(),
                    project_id=project_id,
                    state=bool(values.get("state")),
                    source=ActuationSource(values.get("source", ActuationSource.automatic)),
                    temperature_at_change=float(temperature) if temperature is not None else None,
                )
            )
        return events

    # -- lifecycle ------------------------------------------------------------

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self._client.ping))
        except Exception:
            logger.warning("InfluxDB ping failed", exc_info=True)
            return False

    def close(self) -> None:
        self._client.close()


__all__ = ["ACTUATION_MEASUREMENT", "ActuationEvent", "InfluxRecorder", "Sample", "flux_time"]
