"""Outlet targets and the driver that switches them.

A device record is turned into an :data:`OutletTarget` once, at resolution
time; the driver then dispatches on the variant instead of re-inspecting
optional device fields at every call site.
"""

from __future__ import annotations

from dataclasses import dataclass

from fermentwatch.core.errors import ConfigurationError
from fermentwatch.integrations.ha_client import HAClient
from fermentwatch.integrations.shelly_client import ShellyClient
from fermentwatch.models.enums import DeviceKind
from fermentwatch.services.project_store import DeviceRecord


@dataclass(frozen=True, slots=True)
class HubEntityOutlet:
    """Outlet switched through a Home Assistant ``switch`` entity."""

    device_id: str
    entity_id: str

    def describe(self) -> str:
        return f"hub entity {self.entity_id}"


@dataclass(frozen=True, slots=True)
class DirectAddressOutlet:
    """Outlet switched by calling the plug's own RPC endpoint."""

    device_id: str
    address: str

    def describe(self) -> str:
        return f"direct address {self.address}"


type OutletTarget = HubEntityOutlet | DirectAddressOutlet


def resolve_outlet(device: DeviceRecord | None, *, device_id: str | None = None) -> OutletTarget:
    """Pick how ``device`` is actuated; the hub entity wins when both are set.

    Raises:
        ConfigurationError: missing device, wrong kind, or no usable identifier.
    """
    if device is None:
        raise ConfigurationError(f"Outlet device {device_id or '<unset>'} not found")
    if device.kind != DeviceKind.outlet:
        raise ConfigurationError(f"Device {device.id} is a {device.kind}, not an outlet")
    if device.ha_entity_id:
        return HubEntityOutlet(device_id=device.id, entity_id=device.ha_entity_id)
    if device.address:
        return DirectAddressOutlet(device_id=device.id, address=device.address)
    raise ConfigurationError(f"Outlet {device.id} has neither a hub entity id nor an address")


class OutletDriver:
    """Switch an :data:`OutletTarget` on or off through the matching client."""

    def __init__(self, hub: HAClient, shelly: ShellyClient) -> None:
        self._hub = hub
        self._shelly = shelly

    async def switch(self, target: OutletTarget, on: bool) -> None:
        """Raises ``HubUnavailable`` or ``DeviceUnavailable`` depending on the variant."""
        match target:
            case HubEntityOutlet(entity_id=entity_id):
                await self._hub.invoke_switch(entity_id, on)
            case DirectAddressOutlet(address=address):
                await self._shelly.invoke_direct_switch(address, on)
            case _:
                raise ConfigurationError(f"Unsupported outlet target {target!r}")


__all__ = [
    "DirectAddressOutlet",
    "HubEntityOutlet",
    "OutletDriver",
    "OutletTarget",
    "resolve_outlet",
]
