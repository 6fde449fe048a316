"""Binary sensor platform for Arlo Hub integration."""

from __future__ import annotations

from homeassistant.components.binary_sensor import (
    BinarySensorDeviceClass,
    BinarySensorEntity,
    BinarySensorEntityDescription,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .coordinator import ArloHubDataUpdateCoordinator
from .entity import ArloDeviceEntity

BINARY_SENSOR_TYPES: tuple[BinarySensorEntityDescription, ...] = (
    BinarySensorEntityDescription(
        key="charging",
        name="Charging",
        device_class=BinarySensorDeviceClass.BATTERY_CHARGING,
    ),
    BinarySensorEntityDescription(
        key="stream_active",
        name="Streaming",
        icon="mdi:cctv",
    ),
)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the Arlo binary sensors from a config entry."""
    coordinator: ArloHubDataUpdateCoordinator = hass.data[DOMAIN][
        config_entry.entry_id
    ]

    async_add_entities(
        ArloBinarySensor(coordinator, camera.device_id, description)
        for camera in coordinator.client.cameras
        for description in BINARY_SENSOR_TYPES
    )


class ArloBinarySensor(ArloDeviceEntity, BinarySensorEntity):
    """Implementation of an Arlo binary sensor."""

    entity_description: BinarySensorEntityDescription

    def __init__(
        self,
        coordinator: ArloHubDataUpdateCoordinator,
        device_id: str,
        description: BinarySensorEntityDescription,
    ) -> None:
        """Initialize the binary sensor."""
        self.entity_description = description
        super().__init__(coordinator, device_id)

    @property
    def is_on(self) -> bool | None:
        """Return true if the binary sensor is on."""
        device = self.device
        if device is None:
            return None

        if self.entity_description.key == "charging":
            # chargingState is Off, On or QuickCharger
            state = device.properties.get("chargingState")
            return None if state is None else state != "Off"

        if self.entity_description.key == "stream_active":
            return device.stream_active

        return None
