"""
Core models for the Arlo integration.
"""

from __future__ import annotations

import time
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class SessionState(IntEnum):
    """Lifecycle state of the cloud session."""

    UNAUTHENTICATED = 0
    AUTHENTICATING = 1
    AWAITING_FACTOR = 2
    AWAITING_CODE = 3
    AUTHENTICATED = 4
    EXPIRED = 5


class Identity(BaseModel):
    """Account identity returned by the session exchange."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    serial_number: str | None = None


class Session(BaseModel):
    """
    Immutable bearer session. Only AuthSession produces new values.
    """

    model_config = ConfigDict(frozen=True)

    state: SessionState = SessionState.UNAUTHENTICATED
    bearer_token: SecretStr | None = None
    token_expiry: float | None = None
    identity: Identity | None = None

    def is_valid(self, now: float | None = None) -> bool:
        """Check if the session can be used for API calls."""
        if self.state != SessionState.AUTHENTICATED or self.bearer_token is None:
            return False
        if self.token_expiry is None:
            return True
        return (now if now is not None else time.time()) < self.token_expiry

    @property
    def user_id(self) -> str | None:
        return self.identity.user_id if self.identity else None

    def auth_headers(self) -> dict[str, str]:
        """Headers carried by every authenticated cloud call."""
        if self.bearer_token is None:
            return {}
        return {
            "accept": "application/json",
            "content-type": "application/json;charset=UTF-8",
            "auth-version": "2",
            "authorization": self.bearer_token.get_secret_value(),
        }


class DeviceType(str, Enum):
    """Device types reported by discovery."""

    HUB = "basestation"
    CAMERA = "camera"
    CAMERA_Q = "arloq"
    CAMERA_QS = "arloqs"

    @property
    def is_q(self) -> bool:
        return self in (DeviceType.CAMERA_Q, DeviceType.CAMERA_QS)


class MediaUrls(BaseModel):
    """Presigned media URLs last reported for a camera."""

    content: str | None = None
    thumbnail: str | None = None
    last_image: str | None = None
    full_frame_snapshot: str | None = None


class Device(BaseModel):
    """A hub or camera known to the registry."""

    device_id: str
    device_type: DeviceType
    device_name: str = ""
    x_cloud_id: str | None = None
    model_id: str | None = None
    is_subscribed: bool = False
    properties: dict[str, Any] = Field(default_factory=dict)
    media_urls: MediaUrls = Field(default_factory=MediaUrls)
    stream_active: bool = False
    stream_url: str | None = None
    siren: dict[str, Any] = Field(default_factory=dict)
    armed: bool | None = None
    active_mode: str | None = None
    wifi: dict[str, Any] = Field(default_factory=dict)
    base_station: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_discovery(cls, raw: dict[str, Any]) -> Device:
        """Build a device from one entry of the discovery payload."""
        return cls(
            device_id=raw["deviceId"],
            device_type=DeviceType(raw["deviceType"]),
            device_name=raw.get("deviceName", ""),
            x_cloud_id=raw.get("xCloudId"),
            model_id=raw.get("modelId"),
            properties=dict(raw.get("properties") or {}),
        )

    @property
    def privacy_active(self) -> bool | None:
        return self.properties.get("privacyActive")

    @property
    def battery_level(self) -> int | None:
        return self.properties.get("batteryLevel")


class HubAddress(BaseModel):
    """Local network address of the hub storage service."""

    model_config = ConfigDict(frozen=True)

    ip: str
    port: int


class LocalMediaCredential(BaseModel):
    """Key and certificate material for the hub-local TLS channel."""

    private_key_pem: SecretStr
    public_key_pem: str
    peer_cert: str | None = None
    device_cert: str | None = None
    ica_cert: str | None = None
    hub_token: SecretStr | None = None
    hub_address: HubAddress | None = None
    token_issued_at: float | None = None

    def has_certificates(self) -> bool:
        return self.peer_cert is not None and self.ica_cert is not None


class RecordingMetadata(BaseModel):
    """One recording entry listed by the hub."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = None
    device_id: str | None = Field(default=None, alias="deviceId")
    created_date: str | None = Field(default=None, alias="createdDate")
    utc_created_date: int | None = Field(default=None, alias="utcCreatedDate")
    content_type: str | None = Field(default=None, alias="contentType")
    duration: float | None = Field(default=None, alias="mediaDurationSecond")
