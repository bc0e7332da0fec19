"""Direct control of Shelly Gen2 plugs for outlets not exposed through the hub."""

from __future__ import annotations

import logging
from contextlib import suppress
from typing import Any

import httpx

from fermentwatch.core.errors import DeviceUnavailable

logger = logging.getLogger(__name__)


class ShellyClient:
    """Async wrapper around the Shelly RPC endpoints used for outlet switching."""

    def __init__(
        self,
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ShellyClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            with suppress(Exception):
                await self._client.aclose()
            self._client = None

    async def _rpc(self, address: str, method: str, params: dict[str, Any]) -> Any:
        url = f"http://{address}/rpc/{method}"
        try:
            response = await self._http().get(url, params=params)
        except httpx.TimeoutException as exc:
            raise DeviceUnavailable(f"{method} on {address} timed out") from exc
        except httpx.HTTPError as exc:
            raise DeviceUnavailable(f"{method} on {address} failed: {exc}") from exc

        if not response.is_success:
            raise DeviceUnavailable(
                f"{method} on {address} returned {response.status_code}: {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError:
            return None

    async def invoke_direct_switch(self, address: str, on: bool) -> None:
        """Set relay 0 of the plug at ``address``."""
        result = await self._rpc(address, "Switch.Set", {"id": 0, "on": "true" if on else "false"})
        # Switch.Set answers {"was_on": bool}
        logger.info("Shelly outlet %s set to %s (result=%s)", address, on, result)

    async def get_switch_status(self, address: str) -> dict[str, Any]:
        """Return relay 0 status (``output``, ``apower``, ...) of the plug at ``address``."""
        result = await self._rpc(address, "Switch.GetStatus", {"id": 0})
        return result if isinstance(result, dict) else {}


__all__ = ["ShellyClient"]
