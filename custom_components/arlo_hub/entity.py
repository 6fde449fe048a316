"""Base entity classes for Arlo Hub integration."""

from __future__ import annotations

from collections.abc import Awaitable
from typing import Any

from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import DOMAIN, MANUFACTURER
from .coordinator import ArloHubDataUpdateCoordinator
from .core.errors import ArloError
from .core.models import Device


class ArloDeviceEntity(CoordinatorEntity[ArloHubDataUpdateCoordinator]):
    """Base class for entities bound to one hub or camera."""

    _attr_has_entity_name = True

    def __init__(
        self,
        coordinator: ArloHubDataUpdateCoordinator,
        device_id: str,
    ) -> None:
        """Initialize the entity."""
        super().__init__(coordinator)
        self._device_id = device_id
        device = self.device
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, device_id)},
            manufacturer=MANUFACTURER,
            model=(device.model_id if device else None) or "Arlo",
            name=(device.device_name if device else None) or device_id,
        )

    @property
    def device_id(self) -> str:
        return self._device_id

    @property
    def device(self) -> Device | None:
        """Device state from the latest snapshot."""
        return self.coordinator.data.get("devices", {}).get(self._device_id)

    @property
    def unique_id(self) -> str:
        """Return a unique ID for this entity."""
        if self.entity_description:
            return f"{self.device_id}_{self.entity_description.key}"
        return f"{self.device_id}_{self.__class__.__name__.lower()}"

    @property
    def available(self) -> bool:
        """Return if entity is available."""
        if not self.coordinator.last_update_success:
            return False
        return self.device is not None and bool(self.coordinator.data.get("connected"))

    async def _async_command(self, command: Awaitable[Any]) -> None:
        """Await an engine command, surfacing failures to the caller."""
        try:
            await command
        except ArloError as err:
            raise HomeAssistantError(f"Arlo command failed: {err}") from err
