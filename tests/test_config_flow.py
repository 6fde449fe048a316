"""Tests for config and options flow helpers."""

import pytest
import voluptuous as schemas
from homeassistant.const import CONF_EMAIL, CONF_PASSWORD

from custom_components.arlo_hub.config_flow import error_key, options_schema
from custom_components.arlo_hub.const import CONF_REFRESH_INTERVAL
from custom_components.arlo_hub.coordinator import config_from_entry_data
from custom_components.arlo_hub.core.errors import (
    ConnectionRefusedTransportError,
    InvalidCodeError,
    InvalidCredentialsError,
    NoFactorAvailableError,
    NonSuccessStatusError,
    TokenExpiredError,
    TransportTimeoutError,
)

DATA = {CONF_EMAIL: "user@example.com", CONF_PASSWORD: "secret"}


def _raised(error, cause):
    try:
        try:
            raise cause
        except Exception as err:
            raise error("login step failed") from err
    except Exception as err:
        return err


@pytest.mark.parametrize(
    ("error", "cause", "key"),
    [
        (InvalidCredentialsError, ConnectionRefusedTransportError("down"), "cannot_connect"),
        (TokenExpiredError, TransportTimeoutError("slow"), "cannot_connect"),
        (InvalidCredentialsError, NonSuccessStatusError(401, None), "invalid_auth"),
        (NoFactorAvailableError, NonSuccessStatusError(400, None), "no_factor"),
        (InvalidCodeError, ValueError("bad"), "invalid_code"),
    ],
)
def test_error_key(error, cause, key):
    assert error_key(_raised(error, cause)) == key


def test_error_key_without_cause():
    assert error_key(NoFactorAvailableError("none")) == "no_factor"
    assert error_key(InvalidCredentialsError("rejected")) == "invalid_auth"


def test_options_schema_coerces_and_bounds():
    schema = options_schema(0)

    assert schema({}) == {CONF_REFRESH_INTERVAL: 0}
    assert schema({CONF_REFRESH_INTERVAL: "600"}) == {CONF_REFRESH_INTERVAL: 600}
    with pytest.raises(schemas.Invalid):
        schema({CONF_REFRESH_INTERVAL: -1})


def test_refresh_interval_option_reaches_engine_config():
    assert config_from_entry_data(DATA, {}).refresh_interval is None
    assert config_from_entry_data(DATA, {CONF_REFRESH_INTERVAL: 0}).refresh_interval is None
    assert config_from_entry_data(DATA, {CONF_REFRESH_INTERVAL: 600}).refresh_interval == 600
