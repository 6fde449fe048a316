"""Constants for the Arlo Hub integration."""

from typing import Final

DOMAIN: Final = "arlo_hub"
MANUFACTURER: Final = "Arlo"

CONF_MFA_MODE: Final = "mfa_mode"
CONF_IMAP_HOST: Final = "imap_host"
CONF_IMAP_PORT: Final = "imap_port"
CONF_IMAP_USER: Final = "imap_user"
CONF_IMAP_PASSWORD: Final = "imap_password"
CONF_MOBILE_TOKEN: Final = "mobile_token"
CONF_MOBILE_PAYLOAD: Final = "mobile_payload"
CONF_APPLICATION_ID: Final = "application_id"
CONF_REFRESH_INTERVAL: Final = "refresh_interval"
CONF_INSTALLATION_ID: Final = "installation_id"

DEFAULT_IMAP_PORT: Final = 993
DEFAULT_REFRESH_INTERVAL: Final = 0
