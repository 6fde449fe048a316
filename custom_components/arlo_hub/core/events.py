"""
Domain notifications emitted by the engine.

Every event is a frozen model with a class level ``KIND`` tag so consumers
can dispatch either on type or on the tag.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from .models import DeviceType

_LOGGER = logging.getLogger(__name__)


class DomainEvent(BaseModel):
    """Base class for engine notifications."""

    model_config = ConfigDict(frozen=True)

    KIND: ClassVar[str] = "event"

    @property
    def kind(self) -> str:
        return self.KIND


# -------------------------
# Session and channel lifecycle
# -------------------------


class Connected(DomainEvent):
    KIND: ClassVar[str] = "connected"


class LoggedIn(DomainEvent):
    KIND: ClassVar[str] = "logged_in"

    serial_number: str | None = None


class LoggedOut(DomainEvent):
    KIND: ClassVar[str] = "logged_out"

    remote: bool = False


class RemoteLogoutReceived(DomainEvent):
    KIND: ClassVar[str] = "remote_logout"


class EngineFailed(DomainEvent):
    """The engine cannot continue (e.g. no hub discovered)."""

    KIND: ClassVar[str] = "engine_failed"

    reason: str


# -------------------------
# Discovery
# -------------------------


class DeviceFound(DomainEvent):
    KIND: ClassVar[str] = "device_found"

    device_id: str
    device_type: DeviceType
    name: str


class GotAllDevices(DomainEvent):
    KIND: ClassVar[str] = "got_all_devices"

    device_ids: tuple[str, ...]


class PropertiesRefreshed(DomainEvent):
    KIND: ClassVar[str] = "properties_refreshed"


class DeviceSubscribed(DomainEvent):
    KIND: ClassVar[str] = "device_subscribed"

    device_id: str


# -------------------------
# Device state
# -------------------------


class DeviceUpdated(DomainEvent):
    KIND: ClassVar[str] = "device_updated"

    device_id: str
    properties: dict[str, Any] = Field(default_factory=dict)


class BatteryUpdated(DomainEvent):
    KIND: ClassVar[str] = "battery"

    device_id: str
    battery_level: int | None = None
    charging_state: str | None = None
    signal_strength: int | None = None


class SirenChanged(DomainEvent):
    KIND: ClassVar[str] = "siren"

    device_id: str
    siren: dict[str, Any] = Field(default_factory=dict)


class ModeChanged(DomainEvent):
    KIND: ClassVar[str] = "mode"

    device_id: str
    mode: str
    armed: bool


class MediaUpload(DomainEvent):
    KIND: ClassVar[str] = "media_upload"

    device_id: str
    urls: dict[str, str] = Field(default_factory=dict)


class FullFrameSnapshotAvailable(DomainEvent):
    KIND: ClassVar[str] = "full_frame_snapshot_available"

    device_id: str
    url: str


class StreamStateChanged(DomainEvent):
    KIND: ClassVar[str] = "stream_state"

    device_id: str
    active: bool


class LocalStorageOpened(DomainEvent):
    KIND: ClassVar[str] = "local_storage_opened"

    ip: str
    port: int


EventHandler = Callable[[DomainEvent], None]


class EventBus:
    """Synchronous observer list for domain events."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """Register ``handler`` and return a function that removes it."""
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    def publish(self, event: DomainEvent) -> None:
        """Deliver ``event`` to every handler.

        A failing handler is logged and does not stop delivery to the rest.
        """
        _LOGGER.debug("Publishing %s", event.kind)
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:  # pylint: disable=broad-except
                _LOGGER.exception("Error in %s event handler", event.kind)

    def publish_all(self, events: list[DomainEvent]) -> None:
        for event in events:
            self.publish(event)
