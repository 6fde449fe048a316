"""Named endpoints and protocol constants for the Arlo cloud API."""

from typing import Final

WEB_ORIGIN: Final = "https://my.arlo.com"
API_ROOT: Final = "https://myapi.arlo.com/hmsweb"
AUTH_ROOT: Final = "https://ocapi-app.arlo.com/api"
AUTH_V2_ROOT: Final = "https://ocapi-app.arlo.com/api/v2"

# Cloud session
ENDPOINT_LOGOUT: Final = f"{API_ROOT}/logout"
ENDPOINT_SESSION: Final = f"{API_ROOT}/users/session/v2"
ENDPOINT_SUBSCRIBE: Final = f"{API_ROOT}/client/subscribe"
ENDPOINT_DEVICES: Final = f"{API_ROOT}/v2/users/devices"
ENDPOINT_AUTOMATION: Final = f"{API_ROOT}/users/devices/automation/active"
ENDPOINT_NOTIFY: Final = f"{API_ROOT}/users/devices/notify/{{device_id}}"
ENDPOINT_START_STREAM: Final = f"{API_ROOT}/users/devices/startStream"
ENDPOINT_STOP_STREAM: Final = f"{API_ROOT}/users/devices/stopStream"
ENDPOINT_SNAPSHOT: Final = f"{API_ROOT}/users/devices/fullFrameSnapshot"
ENDPOINT_LIBRARY: Final = f"{API_ROOT}/users/library"
ENDPOINT_CERT_CREATE: Final = f"{API_ROOT}/users/devices/v2/security/cert/create"
ENDPOINT_RATLS_TOKEN: Final = f"{API_ROOT}/users/device/ratls/token/{{hub_id}}"

# Email MFA flow
ENDPOINT_AUTH: Final = f"{AUTH_ROOT}/auth"
ENDPOINT_GET_FACTORS: Final = f"{AUTH_ROOT}/getFactors"
ENDPOINT_START_AUTH: Final = f"{AUTH_ROOT}/startAuth"
ENDPOINT_FINISH_AUTH: Final = f"{AUTH_ROOT}/finishAuth"
ENDPOINT_VALIDATE_TOKEN: Final = f"{AUTH_ROOT}/validateAccessToken"

# Push MFA flow
ENDPOINT_PUSH_VALIDATE: Final = f"{AUTH_V2_ROOT}/ocAccessTokenValidate_PHP_MFA"
ENDPOINT_PUSH_AUTH: Final = f"{AUTH_V2_ROOT}/ocAuth_PHP_MFA"
ENDPOINT_PUSH_FACTORS: Final = f"{AUTH_V2_ROOT}/ocGetFactors_PHP_MFA"
ENDPOINT_PUSH_START: Final = f"{AUTH_V2_ROOT}/ocStart2FAauth_PHP_MFA"

# Hub-local storage (RATLS)
LOCAL_LIST_PATH: Final = "https://{ip}:{port}/hmsls/list/{date_from}/{date_to}"
LOCAL_DOWNLOAD_PATH: Final = "https://{ip}:{port}/hmsls/download/{path}"

DEFAULT_USER_AGENT: Final = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 11_1_2 like Mac OS X) "
    "AppleWebKit/604.3.5 (KHTML, like Gecko) Mobile/15B202 NETGEAR/v1 "
    "(iOS Vuezone)"
)

TRANSACTION_PREFIX: Final = "iOS"
DISARMED_MODE: Final = "mode0"
ARMED_MODE: Final = "mode1"

MFA_EMAIL_SUBJECT: Final = "Your one-time authentication code from Arlo"
FACTOR_TYPE_EMAIL: Final = "EMAIL"
FACTOR_TYPE_PUSH: Final = "PUSH"

SIREN_DURATION: Final = 300
SIREN_VOLUME: Final = 8
SIREN_PATTERN: Final = "alarm"
