"""Config flow for Arlo Hub integration."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as schemas
from homeassistant import config_entries
from homeassistant.config_entries import ConfigFlowResult
from homeassistant.const import CONF_EMAIL, CONF_PASSWORD
from homeassistant.core import callback

from .const import (
    CONF_APPLICATION_ID,
    CONF_IMAP_HOST,
    CONF_IMAP_PASSWORD,
    CONF_IMAP_PORT,
    CONF_IMAP_USER,
    CONF_MFA_MODE,
    CONF_MOBILE_PAYLOAD,
    CONF_MOBILE_TOKEN,
    CONF_REFRESH_INTERVAL,
    DEFAULT_IMAP_PORT,
    DEFAULT_REFRESH_INTERVAL,
    DOMAIN,
)
from .coordinator import config_from_entry_data
from .core.auth import AuthSession, build_auth_flow
from .core.config import MfaMode
from .core.errors import (
    AuthError,
    ConnectionRefusedTransportError,
    InvalidCodeError,
    NoFactorAvailableError,
    TransportTimeoutError,
)
from .core.mailbox import ImapCodeSource
from .http_client import ArloHAHttpClient

_LOGGER = logging.getLogger(__name__)

USER_SCHEMA = schemas.Schema(
    {
        schemas.Required(CONF_EMAIL): str,
        schemas.Required(CONF_PASSWORD): str,
        schemas.Required(CONF_MFA_MODE, default=MfaMode.EMAIL.value): schemas.In(
            [mode.value for mode in MfaMode]
        ),
    }
)

EMAIL_SCHEMA = schemas.Schema(
    {
        schemas.Required(CONF_IMAP_HOST): str,
        schemas.Required(CONF_IMAP_PORT, default=DEFAULT_IMAP_PORT): schemas.All(
            schemas.Coerce(int), schemas.Range(min=1, max=65535)
        ),
        schemas.Required(CONF_IMAP_USER): str,
        schemas.Required(CONF_IMAP_PASSWORD): str,
    }
)

PUSH_SCHEMA = schemas.Schema(
    {
        schemas.Required(CONF_MOBILE_TOKEN): str,
        schemas.Required(CONF_MOBILE_PAYLOAD): str,
        schemas.Required(CONF_APPLICATION_ID): str,
    }
)


def error_key(err: AuthError) -> str:
    """Map a login failure to the form error shown to the user."""
    if isinstance(err.__cause__, (TransportTimeoutError, ConnectionRefusedTransportError)):
        return "cannot_connect"
    if isinstance(err, NoFactorAvailableError):
        return "no_factor"
    if isinstance(err, InvalidCodeError):
        return "invalid_code"
    return "invalid_auth"


def options_schema(refresh_interval: int = DEFAULT_REFRESH_INTERVAL) -> schemas.Schema:
    """Schema of the options form, defaulting to the current values."""
    return schemas.Schema(
        {
            schemas.Required(CONF_REFRESH_INTERVAL, default=refresh_interval): schemas.All(
                schemas.Coerce(int), schemas.Range(min=0, max=86400)
            ),
        }
    )


class ArloHubConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Arlo Hub."""

    VERSION = 1

    def __init__(self) -> None:
        """Initialize the config flow."""
        self._data: dict[str, Any] = {}

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the account step."""
        if user_input is not None:
            email = user_input[CONF_EMAIL].strip()
            await self.async_set_unique_id(email.lower())
            self._abort_if_unique_id_configured()

            self._data = {**user_input, CONF_EMAIL: email}
            if user_input[CONF_MFA_MODE] == MfaMode.PUSH.value:
                return await self.async_step_push()
            return await self.async_step_email()

        return self.async_show_form(step_id="user", data_schema=USER_SCHEMA)

    async def async_step_email(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the mailbox step for e-mail codes."""
        errors: dict[str, str] = {}
        if user_input is not None:
            self._data.update(user_input)
            if not (errors := await self._async_validate()):
                return self._create_entry()

        return self.async_show_form(
            step_id="email", data_schema=EMAIL_SCHEMA, errors=errors
        )

    async def async_step_push(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Handle the mobile token step for push approval."""
        errors: dict[str, str] = {}
        if user_input is not None:
            self._data.update(user_input)
            if not (errors := await self._async_validate()):
                return self._create_entry()

        return self.async_show_form(
            step_id="push", data_schema=PUSH_SCHEMA, errors=errors
        )

    def _create_entry(self) -> ConfigFlowResult:
        return self.async_create_entry(
            title=f"Arlo {self._data[CONF_EMAIL]}", data=self._data
        )

    async def _async_validate(self) -> dict[str, str]:
        """Run one full login to check the account and second factor."""
        config = config_from_entry_data(self._data)
        transport = ArloHAHttpClient(self.hass)
        flow = build_auth_flow(transport, config, ImapCodeSource())
        auth = AuthSession(
            transport, flow, user_agent=config.user_agent, timeout=config.request_timeout
        )

        try:
            await auth.login()
            await auth.logout()
        except AuthError as err:
            _LOGGER.error("Arlo login failed: %s", err)
            return {"base": error_key(err)}
        finally:
            await transport.close()
        return {}

    @staticmethod
    @callback
    def async_get_options_flow(
        config_entry: config_entries.ConfigEntry,
    ) -> ArloHubOptionsFlow:
        """Create the options flow."""
        return ArloHubOptionsFlow()


class ArloHubOptionsFlow(config_entries.OptionsFlow):
    """Handle Arlo Hub options."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """Manage the periodic property refresh."""
        if user_input is not None:
            return self.async_create_entry(data=user_input)

        current = self.config_entry.options.get(
            CONF_REFRESH_INTERVAL, DEFAULT_REFRESH_INTERVAL
        )
        return self.async_show_form(step_id="init", data_schema=options_schema(current))
