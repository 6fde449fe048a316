"""Button platform for Arlo Hub integration."""

from __future__ import annotations

from homeassistant.components.button import (
    ButtonEntity,
    ButtonEntityDescription,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .coordinator import ArloHubDataUpdateCoordinator
from .entity import ArloDeviceEntity

REFRESH_BUTTON = ButtonEntityDescription(
    key="refresh",
    name="Refresh",
    icon="mdi:refresh",
)

CAMERA_BUTTON_TYPES: tuple[ButtonEntityDescription, ...] = (
    ButtonEntityDescription(
        key="snapshot",
        name="Take Snapshot",
        icon="mdi:camera",
    ),
    ButtonEntityDescription(
        key="stop_stream",
        name="Stop Stream",
        icon="mdi:stop",
    ),
)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the Arlo buttons from a config entry."""
    coordinator: ArloHubDataUpdateCoordinator = hass.data[DOMAIN][
        config_entry.entry_id
    ]

    entities: list[ArloButton] = []
    if (hub := coordinator.client.hub) is not None:
        entities.append(ArloButton(coordinator, hub.device_id, REFRESH_BUTTON))
    entities.extend(
        ArloButton(coordinator, camera.device_id, description)
        for camera in coordinator.client.cameras
        for description in CAMERA_BUTTON_TYPES
    )
    async_add_entities(entities)


class ArloButton(ArloDeviceEntity, ButtonEntity):
    """Implementation of an Arlo button."""

    entity_description: ButtonEntityDescription

    def __init__(
        self,
        coordinator: ArloHubDataUpdateCoordinator,
        device_id: str,
        description: ButtonEntityDescription,
    ) -> None:
        """Initialize the button."""
        self.entity_description = description
        super().__init__(coordinator, device_id)

    async def async_press(self) -> None:
        """Handle the button press."""
        client = self.coordinator.client
        if self.entity_description.key == "refresh":
            await self.coordinator.async_request_refresh()
        elif self.entity_description.key == "snapshot":
            await self._async_command(client.take_snapshot(self.device_id))
        elif self.entity_description.key == "stop_stream":
            await self._async_command(client.stop_stream(self.device_id))
