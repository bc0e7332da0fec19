"""Home Assistant REST API client for FermentWatch.

Provides a small async wrapper around the two Home Assistant calls the
control loop depends on: reading an entity's state and switching an outlet
entity on or off. Every call is bounded by a timeout and never retried;
failures surface as :class:`HubUnavailable` so the caller decides what to
skip.
"""

from __future__ import annotations

import logging
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any

import httpx

from fermentwatch.core.errors import HubUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 5.0


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class EntityState:
    """Snapshot of a single Home Assistant entity."""

    entity_id: str
    state: str
    attributes: dict[str, Any] = field(default_factory=dict)
    last_changed: str = ""
    last_updated: str = ""

    @property
    def domain(self) -> str:
        """Return the domain portion of the entity id (e.g. ``sensor``)."""
        return self.entity_id.split(".", 1)[0]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntityState:
        """Build an ``EntityState`` from a raw HA JSON dict."""
        return cls(
            entity_id=data.get("entity_id", ""),
            state=str(data.get("state", "")),
            attributes=data.get("attributes") or {},
            last_changed=data.get("last_changed", ""),
            last_updated=data.get("last_updated", ""),
        )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class HAClient:
    """Async REST wrapper for the Home Assistant API.

    Usage::

        async with HAClient("http://homeassistant.local:8123", token="ey...") as hub:
            raw = await hub.read_entity_state("sensor.fermenter_temperature")
            await hub.invoke_switch("switch.heating_mat", on=True)

    The token is optional; without one no ``Authorization`` header is sent.
    """

    def __init__(
        self,
        url: str,
        token: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = url.rstrip("/")
        self._token = token or None
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    # -- async context manager ------------------------------------------------

    async def __aenter__(self) -> HAClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.disconnect()

    # -- lifecycle ------------------------------------------------------------

    @property
    def timeout(self) -> float:
        return self._timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def connect(self) -> None:
        """Create the pooled ``httpx.AsyncClient``. No request is made."""
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers(),
            timeout=self._timeout,
            transport=self._transport,
        )
        logger.info(
            "Home Assistant client ready for %s (auth=%s, timeout=%.1fs)",
            self._base_url,
            "token" if self._token else "none",
            self._timeout,
        )

    async def disconnect(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            with suppress(Exception):
                await self._client.aclose()
            self._client = None
            logger.info("Disconnected from Home Assistant")

    # -- internal request helper ----------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send one request and translate every failure into ``HubUnavailable``."""
        if self._client is None:
            await self.connect()
        assert self._client is not None  # noqa: S101 - guaranteed by connect()

        logger.debug("%s %s", method, path)
        try:
            response = await self._client.request(
                method,
                path,
                json=json,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise HubUnavailable(f"{method} {path} timed out") from exc
        except httpx.HTTPError as exc:
            raise HubUnavailable(f"{method} {path} failed: {exc}") from exc

        if not response.is_success:
            raise HubUnavailable(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}"
            )
        return response

    # -- core API methods -----------------------------------------------------

    async def get_entity(self, entity_id: str, *, timeout: float | None = None) -> EntityState:
        """Fetch the full state object of a single entity."""
        response = await self._request("GET", f"/api/states/{entity_id}", timeout=timeout)
        try:
            return EntityState.from_dict(response.json())
        except (ValueError, AttributeError) as exc:
            raise HubUnavailable(f"Unreadable state payload for {entity_id}") from exc

    async def read_entity_state(self, entity_id: str, *, timeout: float | None = None) -> str:
        """Return the raw ``state`` string of an entity; parsing is up to the caller."""
        entity = await self.get_entity(entity_id, timeout=timeout)
        logger.debug("State %s = %s", entity_id, entity.state)
        return entity.state

    async def invoke_switch(
        self, entity_id: str, on: bool, *, timeout: float | None = None
    ) -> None:
        """Turn a switch entity on or off through ``switch.turn_on``/``switch.turn_off``."""
        service = "turn_on" if on else "turn_off"
        logger.info("Calling switch.%s -> %s", service, entity_id)
        await self._request(
            "POST",
            f"/api/services/switch/{service}",
            json={"entity_id": entity_id},
            timeout=timeout,
        )

    async def check_api(self, *, timeout: float | None = None) -> str:
        """Return the API banner message; used by health checks."""
        response = await self._request("GET", "/api/", timeout=timeout)
        try:
            return str(response.json().get("message", "ok"))
        except ValueError:
            return "ok"

    # -- dunder ---------------------------------------------------------------

    def __repr__(self) -> str:
        return f"<HAClient url={self._base_url!r} connected={self._client is not None}>"


__all__ = ["DEFAULT_TIMEOUT_S", "EntityState", "HAClient"]
