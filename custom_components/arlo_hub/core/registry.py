"""In-memory device model kept in sync with push envelopes."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any, Final

from .const import DISARMED_MODE
from .errors import MissingHubError, ProtocolError, UnknownDeviceError
from .events import (
    BatteryUpdated,
    DeviceFound,
    DeviceSubscribed,
    DeviceUpdated,
    DomainEvent,
    FullFrameSnapshotAvailable,
    GotAllDevices,
    LocalStorageOpened,
    MediaUpload,
    ModeChanged,
    RemoteLogoutReceived,
    SirenChanged,
    StreamStateChanged,
)
from .models import Device, DeviceType

_LOGGER = logging.getLogger(__name__)

ACTION_IS: Final = "is"
ACTION_LOGOUT: Final = "logout"
ACTION_FF_SNAPSHOT: Final = "fullFrameSnapshotAvailable"

RESOURCE_MEDIA_UPLOAD: Final = "mediaUploadNotification"
RESOURCE_MODES: Final = "activeAutomations"
RESOURCE_RATLS: Final = "storage/ratls"
RESOURCE_WIFI: Final = "wifi/ap"
RESOURCE_DEVICES: Final = "devices"
RESOURCE_BASESTATION: Final = "basestation"
RESOURCE_CAMERAS: Final = "cameras"

ACTIVITY_STREAM_ACTIVE: Final = "userStreamActive"
ACTIVITY_IDLE: Final = "idle"

_SUBSCRIPTION = re.compile(r"^subscriptions/(.+)$")
_SIREN = re.compile(r"^siren/(.+)$")
_CAMERA = re.compile(r"^cameras/(.+)$")

# Media upload field -> MediaUrls attribute
_MEDIA_FIELDS: Final = {
    "presignedContentUrl": "content",
    "presignedThumbnailUrl": "thumbnail",
    "presignedLastImageUrl": "last_image",
}

Envelope = dict[str, Any]


class DeviceRegistry:
    """Indexed set of the hub and its cameras.

    Mutated only by :meth:`replace_all` during discovery and by
    :meth:`apply_event` for push envelopes.
    """

    def __init__(self) -> None:
        self._hub: Device | None = None
        self._cameras: dict[str, Device] = {}

    def __contains__(self, device_id: str) -> bool:
        return self.get(device_id) is not None

    def __len__(self) -> int:
        return len(self._cameras) + (1 if self._hub else 0)

    @property
    def hub(self) -> Device | None:
        return self._hub

    @property
    def cameras(self) -> list[Device]:
        return list(self._cameras.values())

    @property
    def devices(self) -> list[Device]:
        return ([self._hub] if self._hub else []) + self.cameras

    def get(self, device_id: str) -> Device | None:
        if self._hub is not None and self._hub.device_id == device_id:
            return self._hub
        return self._cameras.get(device_id)

    def require(self, device_id: str) -> Device:
        """Like :meth:`get` but raises UnknownDeviceError."""
        device = self.get(device_id)
        if device is None:
            raise UnknownDeviceError(device_id)
        return device

    def devices_of_type(self, *device_types: DeviceType) -> list[Device]:
        return [d for d in self.devices if d.device_type in device_types]

    def q_cameras(self) -> list[Device]:
        return self.devices_of_type(DeviceType.CAMERA_Q, DeviceType.CAMERA_QS)

    def clear(self) -> None:
        self._hub = None
        self._cameras = {}

    def replace_all(self, discovered: Iterable[dict[str, Any] | Device]) -> list[DomainEvent]:
        """Replace the whole device set with a discovery result.

        Args:
            discovered: Raw discovery entries or already-built devices.

        Returns:
            DeviceFound for every device followed by GotAllDevices.

        Raises:
            MissingHubError: If no base station is present. The previous set is kept.
        """
        hub: Device | None = None
        cameras: dict[str, Device] = {}

        for entry in discovered:
            if isinstance(entry, Device):
                device = entry
            else:
                try:
                    device = Device.from_discovery(entry)
                except (KeyError, ValueError):
                    _LOGGER.debug(
                        "Skipping unsupported device %s (%s)",
                        entry.get("deviceId"),
                        entry.get("deviceType"),
                    )
                    continue

            if device.device_type == DeviceType.HUB:
                if hub is None:
                    hub = device
                else:
                    _LOGGER.warning(
                        "Ignoring additional base station %s", device.device_id
                    )
            else:
                cameras[device.device_id] = device

        if hub is None:
            raise MissingHubError("No base station found during discovery")

        self._hub = hub
        self._cameras = cameras
        _LOGGER.debug("Found base station %s and %d cameras", hub.device_id, len(cameras))

        events: list[DomainEvent] = [
            DeviceFound(
                device_id=d.device_id, device_type=d.device_type, name=d.device_name
            )
            for d in self.devices
        ]
        events.append(GotAllDevices(device_ids=tuple(self._cameras)))
        return events

    def apply_event(self, envelope: Envelope) -> list[DomainEvent]:
        """Apply one push envelope.

        Unrecognized envelopes and references to unknown devices are logged
        and dropped.

        Returns:
            The domain events produced, possibly empty.
        """
        try:
            return self._apply(envelope)
        except ProtocolError as err:
            _LOGGER.debug("Dropping envelope (%s): %s", err, envelope)
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as err:
            _LOGGER.debug("Dropping malformed envelope (%r): %s", err, envelope)
        return []

    def _apply(self, envelope: Envelope) -> list[DomainEvent]:
        action = envelope.get("action")
        resource = envelope.get("resource") or ""

        if action == ACTION_FF_SNAPSHOT:
            return self._apply_snapshot(envelope, resource)
        if resource == RESOURCE_RATLS:
            props = envelope.get("properties") or {}
            return [LocalStorageOpened(ip=props["privateIP"], port=int(props["port"]))]
        if resource == RESOURCE_MEDIA_UPLOAD:
            return self._apply_media_upload(envelope)
        if resource == RESOURCE_MODES:
            return self._apply_mode(envelope)
        if resource == RESOURCE_WIFI:
            device = self.require(envelope["from"])
            device.wifi = dict(envelope.get("properties") or {})
            return []
        if action == ACTION_IS:
            return self._apply_is(envelope, resource)
        if action == ACTION_LOGOUT:
            return [RemoteLogoutReceived()]

        _LOGGER.debug("Unhandled envelope: %s", envelope)
        return []

    def _apply_snapshot(self, envelope: Envelope, resource: str) -> list[DomainEvent]:
        match = _CAMERA.match(resource)
        if match is None:
            raise ProtocolError(f"Snapshot for unexpected resource {resource}")
        device = self.require(match.group(1))
        url = envelope["properties"]["presignedFullFrameSnapshotUrl"]
        device.media_urls.full_frame_snapshot = url
        _LOGGER.debug("[%s] New full frame snapshot available", device.device_id)
        return [FullFrameSnapshotAvailable(device_id=device.device_id, url=url)]

    def _apply_media_upload(self, envelope: Envelope) -> list[DomainEvent]:
        device = self.require(envelope["deviceId"])
        events: list[DomainEvent] = []

        if device.stream_active:
            device.stream_active = False
            device.stream_url = None
            events.append(StreamStateChanged(device_id=device.device_id, active=False))

        urls: dict[str, str] = {}
        for field, attribute in _MEDIA_FIELDS.items():
            if value := envelope.get(field):
                setattr(device.media_urls, attribute, value)
                urls[field] = value

        events.append(MediaUpload(device_id=device.device_id, urls=urls))
        return events

    def _apply_mode(self, envelope: Envelope) -> list[DomainEvent]:
        for key, value in envelope.items():
            if isinstance(value, dict) and "activeModes" in value:
                gateway_id = key
                mode = value["activeModes"][0]
                break
        else:
            raise ProtocolError("Mode envelope without activeModes")

        device = self.get(gateway_id) or self._hub
        if device is None:
            raise UnknownDeviceError(gateway_id)
        device.active_mode = mode
        device.armed = mode != DISARMED_MODE
        _LOGGER.info(
            "Base station %s is %s", device.device_id, "armed" if device.armed else "disarmed"
        )
        return [ModeChanged(device_id=device.device_id, mode=mode, armed=device.armed)]

    def _apply_is(self, envelope: Envelope, resource: str) -> list[DomainEvent]:
        if _SUBSCRIPTION.match(resource):
            device = self.require(envelope["properties"]["devices"][0])
            device.is_subscribed = True
            return [DeviceSubscribed(device_id=device.device_id)]

        if match := _SIREN.match(resource):
            device = self.require(match.group(1))
            device.siren = dict(envelope.get("properties") or {})
            return [SirenChanged(device_id=device.device_id, siren=device.siren)]

        if resource == RESOURCE_DEVICES:
            return self._apply_bulk_properties(envelope)

        if resource == RESOURCE_BASESTATION:
            device = self.require(envelope["from"])
            device.base_station = {"properties": dict(envelope.get("properties") or {})}
            return []

        if resource == RESOURCE_CAMERAS:
            props = envelope.get("properties")
            if isinstance(props, list):
                props = props[0] if props else None
            if not props:
                _LOGGER.debug("[%s] No device properties in payload", envelope.get("from"))
                return []
            device = self.require(envelope["from"])
            device.properties = dict(props)
            return [DeviceUpdated(device_id=device.device_id, properties=device.properties)]

        if match := _CAMERA.match(resource):
            return self._apply_camera_delta(match.group(1), envelope.get("properties") or {})

        _LOGGER.debug("Unhandled state envelope: %s", resource)
        return []

    def _apply_bulk_properties(self, envelope: Envelope) -> list[DomainEvent]:
        devices = envelope.get("devices")
        if devices is None:
            devices = (envelope.get("properties") or {}).get("devices", {})

        events: list[DomainEvent] = []
        for device_id, payload in devices.items():
            device = self.get(device_id)
            if device is None:
                _LOGGER.debug("No device found for %s", device_id)
                continue
            device.properties = dict(payload.get("properties") or {})
            if device.device_type != DeviceType.HUB:
                events.append(
                    BatteryUpdated(
                        device_id=device_id,
                        battery_level=device.properties.get("batteryLevel"),
                        charging_state=device.properties.get("chargingState"),
                        signal_strength=device.properties.get("signalStrength"),
                    )
                )
            events.append(DeviceUpdated(device_id=device_id, properties=device.properties))
        return events

    def _apply_camera_delta(self, device_id: str, props: dict[str, Any]) -> list[DomainEvent]:
        device = self.require(device_id)
        events: list[DomainEvent] = []

        activity = props.get("activityState")
        if activity == ACTIVITY_STREAM_ACTIVE and not device.stream_active:
            device.stream_active = True
            device.stream_url = props.get("streamURL") or device.stream_url
            events.append(StreamStateChanged(device_id=device_id, active=True))
        elif activity == ACTIVITY_IDLE and device.stream_active:
            device.stream_active = False
            device.stream_url = None
            events.append(StreamStateChanged(device_id=device_id, active=False))

        delta = {k: v for k, v in props.items() if k != "activityState"}
        if delta:
            device.properties = {**device.properties, **delta}
            events.append(DeviceUpdated(device_id=device_id, properties=device.properties))
        return events
