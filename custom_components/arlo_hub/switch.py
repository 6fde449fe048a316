"""Switch platform for Arlo Hub integration."""

from __future__ import annotations

from typing import Any

from homeassistant.components.switch import (
    SwitchDeviceClass,
    SwitchEntity,
    SwitchEntityDescription,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN
from .coordinator import ArloHubDataUpdateCoordinator
from .entity import ArloDeviceEntity

ARMED_SWITCH = SwitchEntityDescription(
    key="armed",
    name="Armed",
    device_class=SwitchDeviceClass.SWITCH,
    icon="mdi:shield-home",
)

CAMERA_SWITCH_TYPES: tuple[SwitchEntityDescription, ...] = (
    SwitchEntityDescription(
        key="privacy",
        name="Privacy Mode",
        device_class=SwitchDeviceClass.SWITCH,
        icon="mdi:video-off",
    ),
    SwitchEntityDescription(
        key="siren",
        name="Siren",
        device_class=SwitchDeviceClass.SWITCH,
        icon="mdi:alarm-light",
    ),
)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up the Arlo switches from a config entry."""
    coordinator: ArloHubDataUpdateCoordinator = hass.data[DOMAIN][
        config_entry.entry_id
    ]

    entities: list[ArloSwitch] = []
    if (hub := coordinator.client.hub) is not None:
        entities.append(ArloSwitch(coordinator, hub.device_id, ARMED_SWITCH))
    entities.extend(
        ArloSwitch(coordinator, camera.device_id, description)
        for camera in coordinator.client.cameras
        for description in CAMERA_SWITCH_TYPES
    )
    async_add_entities(entities)


class ArloSwitch(ArloDeviceEntity, SwitchEntity):
    """Implementation of an Arlo switch.

    State changes are not applied locally; the switch follows the push
    channel once the device reports its new state.
    """

    entity_description: SwitchEntityDescription

    def __init__(
        self,
        coordinator: ArloHubDataUpdateCoordinator,
        device_id: str,
        description: SwitchEntityDescription,
    ) -> None:
        """Initialize the switch."""
        self.entity_description = description
        super().__init__(coordinator, device_id)

    @property
    def is_on(self) -> bool | None:
        """Return true if the switch is on."""
        device = self.device
        if device is None:
            return None

        if self.entity_description.key == "armed":
            return device.armed
        if self.entity_description.key == "privacy":
            return device.privacy_active
        if self.entity_description.key == "siren":
            state = device.siren.get("sirenState")
            return None if state is None else state == "on"

        return None

    async def async_turn_on(self, **kwargs: Any) -> None:
        """Turn the switch on."""
        client = self.coordinator.client
        if self.entity_description.key == "armed":
            await self._async_command(client.arm())
        elif self.entity_description.key == "privacy":
            await self._async_command(client.set_privacy(self.device_id, True))
        elif self.entity_description.key == "siren":
            await self._async_command(client.siren_on(self.device_id))

    async def async_turn_off(self, **kwargs: Any) -> None:
        """Turn the switch off."""
        client = self.coordinator.client
        if self.entity_description.key == "armed":
            await self._async_command(client.disarm())
        elif self.entity_description.key == "privacy":
            await self._async_command(client.set_privacy(self.device_id, False))
        elif self.entity_description.key == "siren":
            await self._async_command(client.siren_off(self.device_id))
