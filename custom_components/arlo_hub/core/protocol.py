"""Command construction and dispatch for Arlo devices."""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from datetime import date
from typing import Any, Final

from .const import (
    ARMED_MODE,
    DISARMED_MODE,
    ENDPOINT_AUTOMATION,
    ENDPOINT_DEVICES,
    ENDPOINT_LIBRARY,
    ENDPOINT_NOTIFY,
    ENDPOINT_SNAPSHOT,
    ENDPOINT_START_STREAM,
    ENDPOINT_STOP_STREAM,
    SIREN_DURATION,
    SIREN_PATTERN,
    SIREN_VOLUME,
    TRANSACTION_PREFIX,
)
from .errors import (
    CommandRefusedError,
    MissingHubError,
    NonSuccessStatusError,
    NotConnectedError,
    TokenExpiredError,
    TransportError,
)
from .models import Device, DeviceType, MediaUrls, Session
from .registry import RESOURCE_MODES, DeviceRegistry
from .transport import TransportAdapter, TransportResponse

_LOGGER = logging.getLogger(__name__)

# Full 4K window; the camera crops to its own resolution
SMART_ZOOM: Final = {
    "topleftx": 0,
    "toplefty": 0,
    "bottomrightx": 3840,
    "bottomrighty": 2160,
}

Body = dict[str, Any]


def format_date(value: date | str) -> str:
    """Format a date the way the library endpoints expect (YYYYMMDD)."""
    if isinstance(value, str):
        return value
    return value.strftime("%Y%m%d")


class TransactionIdGenerator:
    """Generates ``<prefix>!<8 hex>.<6 hex>!<ms>`` transaction ids.

    The timestamp part never repeats within one generator.
    """

    def __init__(self, prefix: str = TRANSACTION_PREFIX) -> None:
        self._prefix = prefix
        self._last_ms = 0

    def __call__(self) -> str:
        now_ms = int(time.time() * 1000)
        if now_ms <= self._last_ms:
            now_ms = self._last_ms + 1
        self._last_ms = now_ms
        return f"{self._prefix}!{secrets.token_hex(4)}.{secrets.token_hex(3)}!{now_ms}"


class CommandDispatcher:
    """Builds and sends device commands.

    Commands are fire and forget: a successful return means the request was
    accepted by the cloud, not that the device changed. The effect arrives
    later as a push envelope applied by the registry.
    """

    def __init__(
        self,
        transport: TransportAdapter,
        registry: DeviceRegistry,
        session_provider: Callable[[], Session],
        is_connected: Callable[[], bool],
        *,
        user_agent: str,
        timeout: float | None = None,
        transaction_ids: TransactionIdGenerator | None = None,
    ) -> None:
        self._transport = transport
        self._registry = registry
        self._session_provider = session_provider
        self._is_connected = is_connected
        self._user_agent = user_agent
        self._timeout = timeout
        self.transaction_ids = transaction_ids or TransactionIdGenerator()

    @property
    def session(self) -> Session:
        return self._session_provider()

    def _headers(self, x_cloud_id: str | None = None) -> dict[str, str]:
        session = self.session
        if not session.is_valid():
            raise TokenExpiredError("Session is not authenticated")
        headers = {**session.auth_headers(), "user-agent": self._user_agent}
        if x_cloud_id:
            headers["xcloudId"] = x_cloud_id
        return headers

    def _require_connected(self) -> None:
        if not self._is_connected():
            raise NotConnectedError("Event stream is not connected")

    def _hub(self) -> Device:
        hub = self._registry.hub
        if hub is None:
            raise MissingHubError("No base station registered")
        return hub

    def _route(self, device: Device) -> Device:
        """Device that relays commands for ``device``."""
        if device.device_type == DeviceType.CAMERA:
            return self._hub()
        return device

    def build_body(self, target: Device, body: Body) -> Body:
        """Stamp a command body with routing fields and a fresh transaction id."""
        return {
            **body,
            "from": self.session.user_id,
            "to": target.device_id,
            "transId": self.transaction_ids(),
        }

    async def _post(self, url: str, body: Any, x_cloud_id: str | None) -> TransportResponse:
        try:
            response = await self._transport.request(
                "POST",
                url,
                headers=self._headers(x_cloud_id),
                json=body,
                timeout=self._timeout,
            )
        except TransportError as err:
            _LOGGER.error("Request to %s failed: %s", url, err)
            raise
        if not response.success:
            _LOGGER.warning("Request to %s was not successful: %s", url, response.body)
        return response

    async def notify(self, device: Device, body: Body | list[Body]) -> list[str]:
        """Send one or more notify bodies to ``device``.

        Args:
            device: The device receiving the request (hub or Q camera).
            body: A body or a batch of bodies without routing fields.

        Returns:
            The transaction ids that were sent.

        Raises:
            NotConnectedError: If the push channel is down. Nothing is sent.
            TransportError: If the request failed.
        """
        self._require_connected()
        bodies = body if isinstance(body, list) else [body]
        stamped = [self.build_body(device, item) for item in bodies]
        payload: Any = stamped if isinstance(body, list) else stamped[0]

        _LOGGER.debug(
            "[%s] Notify %s", device.device_id, [item.get("resource") for item in stamped]
        )
        await self._post(
            ENDPOINT_NOTIFY.format(device_id=device.device_id), payload, device.x_cloud_id
        )
        return [item["transId"] for item in stamped]

    async def request_device_refresh(self, device: Device) -> list[str]:
        """Ask a device to publish its current state on the push channel."""
        if device.device_type == DeviceType.CAMERA:
            device = self._hub()

        if device.device_type.is_q:
            resources = ["basestation", "cameras", "wifi/ap"]
        else:
            resources = ["devices", "storage"] + [
                f"siren/{camera.device_id}"
                for camera in self._registry.devices_of_type(DeviceType.CAMERA)
            ]

        _LOGGER.debug("[%s] Request device properties", device.device_id)
        return await self.notify(
            device,
            [
                {"action": "get", "resource": resource, "publishResponse": False}
                for resource in resources
            ],
        )

    async def subscribe_device(self, device: Device) -> list[str]:
        """Register interest in push events from ``device``."""
        if not device.is_subscribed:
            _LOGGER.debug("[%s] Subscribe device to receive events", device.device_id)
        return await self.notify(
            device,
            {
                "action": "set",
                "resource": f"subscriptions/{self.session.user_id}",
                "publishResponse": False,
                "properties": {"devices": [device.device_id]},
            },
        )

    async def _set_mode(self, device_id: str | None, mode: str) -> list[str]:
        device = self._registry.require(device_id) if device_id else self._hub()
        return await self.notify(
            device,
            {
                "action": "set",
                "resource": "modes",
                "publishResponse": True,
                "properties": {"active": mode},
            },
        )

    async def arm(self, device_id: str | None = None) -> list[str]:
        """Arm the hub, or a Q camera when ``device_id`` names one."""
        _LOGGER.debug("Arm %s", device_id or "base station")
        return await self._set_mode(device_id, ARMED_MODE)

    async def disarm(self, device_id: str | None = None) -> list[str]:
        _LOGGER.debug("Disarm %s", device_id or "base station")
        return await self._set_mode(device_id, DISARMED_MODE)

    async def set_privacy(self, device_id: str, active: bool) -> list[str]:
        """Turn a camera off (privacy on) or back on."""
        camera = self._registry.require(device_id)
        if camera.device_type == DeviceType.HUB:
            raise CommandRefusedError("Privacy mode applies to cameras only")
        target = self._route(camera)

        _LOGGER.debug("[%s] Turn camera %s", device_id, "off" if active else "on")
        sent = await self.notify(
            target,
            {
                "action": "set",
                "resource": f"cameras/{device_id}",
                "publishResponse": True,
                "properties": {"privacyActive": active},
            },
        )
        sent += await self.request_device_refresh(target)
        return sent

    async def _set_siren(self, device_id: str, state: str) -> list[str]:
        camera = self._registry.require(device_id)
        target = self._route(camera)

        _LOGGER.debug("[%s] Turn siren %s", device_id, state)
        sent = await self.notify(
            target,
            {
                "action": "set",
                "resource": f"siren/{device_id}",
                "publishResponse": True,
                "properties": {
                    "sirenState": state,
                    "duration": SIREN_DURATION,
                    "volume": SIREN_VOLUME,
                    "pattern": SIREN_PATTERN,
                },
            },
        )
        sent += await self.request_device_refresh(target)
        return sent

    async def siren_on(self, device_id: str) -> list[str]:
        return await self._set_siren(device_id, "on")

    async def siren_off(self, device_id: str) -> list[str]:
        return await self._set_siren(device_id, "off")

    async def start_stream(self, device_id: str) -> str:
        """Request a live stream and return its RTSPS URL.

        Raises:
            CommandRefusedError: If the camera is in privacy mode or no URL was issued.
        """
        self._require_connected()
        camera = self._registry.require(device_id)
        if camera.stream_active and camera.stream_url:
            return camera.stream_url
        if camera.privacy_active:
            raise CommandRefusedError(f"Camera {device_id} is off, unable to start stream")

        target = self._route(camera)
        properties = {
            "smartZoom": dict(SMART_ZOOM),
            "activityState": "startUserStream",
            "cameraId": device_id,
        }
        command = {
            "action": "set",
            "resource": f"cameras/{device_id}",
            "publishResponse": True,
            "properties": properties,
        }
        await self.notify(target, command)

        _LOGGER.debug("[%s] Camera is on, requesting stream", device_id)
        response = await self._post(
            ENDPOINT_START_STREAM, self.build_body(target, command), target.x_cloud_id
        )
        data = response.body.get("data") if isinstance(response.body, dict) else None
        if not response.success or not isinstance(data, dict) or not data.get("url"):
            message = data.get("message") if isinstance(data, dict) else None
            raise CommandRefusedError(
                message or f"Error getting stream for device {device_id}"
            )

        url = str(data["url"]).replace("rtsp://", "rtsps://")
        _LOGGER.debug("[%s] Stream URL: %s", device_id, url)
        return url

    async def stop_stream(self, device_id: str) -> None:
        self._require_connected()
        camera = self._registry.require(device_id)
        target = self._route(camera)
        body = self.build_body(
            target,
            {
                "action": "set",
                "resource": f"cameras/{device_id}",
                "publishResponse": True,
                "properties": {"activityState": "stopUserStream", "cameraId": device_id},
            },
        )
        await self._post(ENDPOINT_STOP_STREAM, body, target.x_cloud_id)
        _LOGGER.debug("[%s] Stream stop requested", device_id)

    async def take_snapshot(self, device_id: str) -> None:
        """Request a full frame snapshot; the URL arrives as a push envelope.

        Raises:
            CommandRefusedError: If the camera state is unknown or it is in privacy mode.
        """
        self._require_connected()
        camera = self._registry.require(device_id)
        if camera.privacy_active is None:
            raise CommandRefusedError(f"Camera {device_id} state is not known yet")
        if camera.privacy_active:
            raise CommandRefusedError(f"Camera {device_id} is off, unable to take snapshot")

        target = self._route(camera)
        body = self.build_body(
            target,
            {
                "action": "set",
                "resource": f"cameras/{device_id}",
                "publishResponse": True,
                "properties": {"activityState": "fullFrameSnapshot"},
            },
        )
        _LOGGER.debug("[%s] Get new full frame snapshot", device_id)
        response = await self._post(ENDPOINT_SNAPSHOT, body, camera.x_cloud_id)
        if not response.success:
            raise CommandRefusedError(f"Snapshot request for {device_id} was rejected")

    def get_snapshot_urls(self, device_id: str) -> MediaUrls:
        """Latest media URLs reported for a camera."""
        return self._registry.require(device_id).media_urls.model_copy()

    async def get_devices(self) -> list[dict[str, Any]]:
        """Fetch the raw discovery payload for the account."""
        try:
            response = await self._transport.request(
                "GET", ENDPOINT_DEVICES, headers=self._headers(), timeout=self._timeout
            )
        except TransportError as err:
            _LOGGER.error("Error getting devices: %s", err)
            raise

        data = response.body.get("data") if isinstance(response.body, dict) else None
        if not response.success or not isinstance(data, list):
            raise NonSuccessStatusError(response.status, response.body)
        return data

    async def fetch_armed_status(self) -> dict[str, Any]:
        """Read the hub's active automation mode.

        Returns:
            A mode envelope for the registry to apply.
        """
        hub = self._hub()
        try:
            response = await self._transport.request(
                "GET", ENDPOINT_AUTOMATION, headers=self._headers(), timeout=self._timeout
            )
        except TransportError as err:
            _LOGGER.error("Error getting armed status: %s", err)
            raise

        entries = response.body.get("data") if isinstance(response.body, dict) else None
        for entry in entries or []:
            if entry.get("gatewayId") == hub.device_id:
                return {
                    "resource": RESOURCE_MODES,
                    hub.device_id: {"activeModes": entry["activeModes"]},
                }
        raise NonSuccessStatusError(response.status, response.body)

    async def get_media_library(
        self, date_from: date | str, date_to: date | str | None = None
    ) -> list[dict[str, Any]]:
        """List cloud recordings between two dates (inclusive)."""
        body = {
            "dateFrom": format_date(date_from),
            "dateTo": format_date(date_to or date.today()),
        }
        _LOGGER.debug("Get media library data %s", body)
        response = await self._post(ENDPOINT_LIBRARY, body, None)
        if not response.success or not isinstance(response.body, dict):
            raise NonSuccessStatusError(response.status, response.body)
        return list(response.body.get("data") or [])
