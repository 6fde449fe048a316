"""Sensor platform for Arlo Hub integration."""

from __future__ import annotations

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorEntityDescription,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import PERCENTAGE, EntityCategory
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .coordinator import ArloHubDataUpdateCoordinator
from .entity import ArloDeviceEntity

SENSOR_TYPES: tuple[SensorEntityDescription, ...] = (
    SensorEntityDescription(
        key="batteryLevel",
        name="Battery Level",
        native_unit_of_measurement=PERCENTAGE,
        device_class=SensorDeviceClass.BATTERY,
        state_class=SensorStateClass.MEASUREMENT,
    ),
    SensorEntityDescription(
        key="signalStrength",
        name="Signal Strength",
        icon="mdi:wifi",
        state_class=SensorStateClass.MEASUREMENT,
        entity_category=EntityCategory.DIAGNOSTIC,
    ),
)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the Arlo sensors from a config entry."""
    coordinator: ArloHubDataUpdateCoordinator = hass.data[DOMAIN][
        config_entry.entry_id
    ]

    async_add_entities(
        ArloSensor(coordinator, camera.device_id, description)
        for camera in coordinator.client.cameras
        for description in SENSOR_TYPES
    )


class ArloSensor(ArloDeviceEntity, SensorEntity):
    """Camera property exposed as a sensor."""

    entity_description: SensorEntityDescription

    def __init__(
        self,
        coordinator: ArloHubDataUpdateCoordinator,
        device_id: str,
        description: SensorEntityDescription,
    ) -> None:
        """Initialize the sensor."""
        self.entity_description = description
        super().__init__(coordinator, device_id)

    @property
    def native_value(self) -> int | None:
        """Return the state of the sensor."""
        device = self.device
        if device is None:
            return None
        return device.properties.get(self.entity_description.key)
