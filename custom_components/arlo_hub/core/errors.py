"""Exception hierarchy for the Arlo engine."""

from __future__ import annotations


class ArloError(Exception):
    """Base class for all engine errors."""


# Authentication


class AuthError(ArloError):
    """Login, MFA or session exchange failed."""


class InvalidCredentialsError(AuthError):
    """Primary credentials were rejected or the account is not MFA-eligible."""


class NoFactorAvailableError(AuthError):
    """No second factor of the configured type is registered."""


class InvalidCodeError(AuthError):
    """The one-time code was missing or rejected."""


class TokenExpiredError(AuthError):
    """The bearer token is no longer valid."""


# Transport


class TransportError(ArloError):
    """A request could not be completed."""


class TransportTimeoutError(TransportError):
    """The request timed out."""


class ConnectionRefusedTransportError(TransportError):
    """The remote end refused or dropped the connection."""


class NonSuccessStatusError(TransportError):
    """The server answered with a non-success status code."""

    def __init__(self, status: int, body: object = None) -> None:
        super().__init__(f"Unexpected response status {status}")
        self.status = status
        self.body = body


class NotConnectedError(TransportError):
    """The push channel is down so commands are refused."""


# Protocol


class ProtocolError(ArloError):
    """The server sent something the engine cannot apply."""


class UnparsableEnvelopeError(ProtocolError):
    """A push message could not be interpreted."""


class UnknownDeviceError(ProtocolError):
    """An envelope or command referenced a device that is not registered."""

    def __init__(self, device_id: str) -> None:
        super().__init__(f"Unknown device {device_id}")
        self.device_id = device_id


class MissingHubError(ProtocolError):
    """Device discovery returned no base station."""


# Local media channel


class LocalChannelError(ArloError):
    """The hub-local secure channel failed."""


class StaleCredentialError(LocalChannelError):
    """The hub rejected the stored certificates."""


class HubUnreachableError(LocalChannelError):
    """The hub could not be reached on its local address."""


class HubTokenExpiredError(LocalChannelError):
    """The hub token or address is missing or past its validity window."""


class CommandRefusedError(ArloError):
    """A command precondition failed against the current device state."""
