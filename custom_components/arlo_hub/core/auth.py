"""Login and multi-factor handshake for the Arlo cloud."""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, ClassVar

from pydantic import SecretStr

from .config import ArloConfig, MfaMode
from .const import (
    ENDPOINT_AUTH,
    ENDPOINT_FINISH_AUTH,
    ENDPOINT_GET_FACTORS,
    ENDPOINT_LOGOUT,
    ENDPOINT_PUSH_AUTH,
    ENDPOINT_PUSH_FACTORS,
    ENDPOINT_PUSH_START,
    ENDPOINT_PUSH_VALIDATE,
    ENDPOINT_SESSION,
    ENDPOINT_START_AUTH,
    ENDPOINT_VALIDATE_TOKEN,
    FACTOR_TYPE_EMAIL,
    FACTOR_TYPE_PUSH,
    WEB_ORIGIN,
)
from .errors import (
    AuthError,
    InvalidCodeError,
    InvalidCredentialsError,
    NoFactorAvailableError,
    TokenExpiredError,
    TransportError,
)
from .mailbox import OneTimeCodeSource
from .models import Identity, Session, SessionState
from .transport import TransportAdapter

_LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[SessionState], None]
Sleep = Callable[[float], Awaitable[Any]]


def _b64(token: str) -> str:
    return base64.b64encode(token.encode("utf-8")).decode("ascii")


def _data(body: Any) -> dict[str, Any]:
    """Unwrap ``{"data": {...}}`` responses; flat bodies are returned as is."""
    if not isinstance(body, dict):
        return {}
    inner = body.get("data")
    return inner if isinstance(inner, dict) else body


def token_expiry(expires_in: float | int | str | None, now: float | None = None) -> float | None:
    """Convert the server's expiry field into an absolute epoch time.

    Values that already look like epoch seconds or milliseconds are taken as
    absolute; small values are a lifetime in seconds.
    """
    if expires_in in (None, ""):
        return None
    value = float(expires_in)  # type: ignore[arg-type]
    if value > 1e12:
        return value / 1000
    if value > 1e9:
        return value
    return (now if now is not None else time.time()) + value


class AuthFlow(ABC):
    """One login variant.

    Steps 1 to 6 of the handshake; the final session exchange is shared and
    lives in :class:`AuthSession`.
    """

    factor_type: ClassVar[str]

    def __init__(
        self,
        transport: TransportAdapter,
        config: ArloConfig,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._config = config
        self._sleep = sleep
        self._headers: dict[str, str] = {}

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    async def _call(
        self,
        error: type[AuthError],
        step: str,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        """Run one handshake request, surfacing any failure as ``error``."""
        _LOGGER.debug("Login step: %s", step)
        try:
            response = await self._transport.request(
                method,
                url,
                headers=self._headers,
                params=params,
                json=json,
                timeout=self._config.request_timeout,
            )
        except TransportError as err:
            _LOGGER.error("Login step '%s' failed: %s", step, err)
            raise error(f"{step} failed: {err}") from err
        return response.body

    async def authenticate(self, progress: ProgressCallback) -> tuple[str, float | None]:
        """Run the handshake up to a verified access token.

        Args:
            progress: Called with each state the handshake enters.

        Returns:
            The token for the session exchange and its absolute expiry.
        """
        self._headers = self.base_headers()
        if (reused := await self.reuse_token()) is not None:
            return reused
        await self.submit_credentials()
        progress(SessionState.AWAITING_FACTOR)
        factor = await self.select_factor()
        await self.start_factor(factor)
        progress(SessionState.AWAITING_CODE)
        code = await self.obtain_code()
        token, expires_in = await self.submit_code(code)
        await self.verify_token()
        return token, token_expiry(expires_in)

    async def reuse_token(self) -> tuple[str, float | None] | None:
        """Return a stored token that is still valid, skipping the handshake."""
        return None

    @abstractmethod
    def base_headers(self) -> dict[str, str]:
        """Headers sent with every handshake request."""

    @abstractmethod
    async def submit_credentials(self) -> None:
        """Step 1: primary credentials."""

    @abstractmethod
    async def select_factor(self) -> dict[str, Any]:
        """Step 2: pick the factor matching ``factor_type``."""

    @abstractmethod
    async def start_factor(self, factor: dict[str, Any]) -> None:
        """Step 3: trigger delivery."""

    @abstractmethod
    async def obtain_code(self) -> str | None:
        """Step 4: wait for the code or for the push approval."""

    @abstractmethod
    async def submit_code(self, code: str | None) -> tuple[str, Any]:
        """Step 5: exchange the code for an access token."""

    @abstractmethod
    async def verify_token(self) -> None:
        """Step 6: validate the access token."""

    def _pick_factor(self, items: Any) -> dict[str, Any]:
        for item in items or []:
            if isinstance(item, dict) and item.get("factorType") == self.factor_type:
                return item
        _LOGGER.error("No %s second factor registered for this account", self.factor_type)
        raise NoFactorAvailableError(f"No {self.factor_type} factor available")


class EmailAuthFlow(AuthFlow):
    """Password login with the one-time code delivered by e-mail."""

    factor_type: ClassVar[str] = FACTOR_TYPE_EMAIL

    def __init__(
        self,
        transport: TransportAdapter,
        config: ArloConfig,
        code_source: OneTimeCodeSource,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(transport, config, sleep=sleep)
        if config.mailbox is None:
            raise ValueError("E-mail MFA needs a mailbox connection")
        self._mailbox = config.mailbox
        self._code_source = code_source
        self._authenticated: str | None = None
        self._factor_auth_code: str | None = None

    def base_headers(self) -> dict[str, str]:
        return {
            "origin": WEB_ORIGIN,
            "referer": WEB_ORIGIN,
            "accept": "application/json, text/plain, */*",
            "auth-version": "2",
            "user-agent": self._config.user_agent,
            "content-type": "application/json;charset=utf-8",
            "schemaVersion": "1",
            "source": "arloCamWeb",
        }

    async def submit_credentials(self) -> None:
        body = await self._call(
            InvalidCredentialsError,
            "get auth token",
            "POST",
            ENDPOINT_AUTH,
            params={"timestamp": str(int(time.time() * 1000))},
            json={
                "email": self._config.email,
                "password": self._config.password.get_secret_value(),
                "language": "en",
                "EnvSource": "prod",
            },
        )
        data = _data(body)
        if not data.get("mfa"):
            _LOGGER.error("Account is not 2FA enabled")
            raise InvalidCredentialsError("Account is not 2FA enabled")
        if not data.get("token"):
            raise InvalidCredentialsError("Credentials were rejected")
        self._headers["authorization"] = _b64(data["token"])
        self._authenticated = str(data.get("authenticated", ""))

    async def select_factor(self) -> dict[str, Any]:
        body = await self._call(
            NoFactorAvailableError,
            "get factors",
            "GET",
            ENDPOINT_GET_FACTORS,
            params={"data": self._authenticated or ""},
        )
        return self._pick_factor(_data(body).get("items"))

    async def start_factor(self, factor: dict[str, Any]) -> None:
        _LOGGER.debug("Clean up mailbox before requesting new code")
        try:
            await self._code_source.prepare(self._mailbox)
        except OSError as err:
            _LOGGER.warning("Unable to tidy mailbox: %s", err)

        body = await self._call(
            NoFactorAvailableError,
            "request code e-mail",
            "POST",
            ENDPOINT_START_AUTH,
            json={"factorId": factor["factorId"]},
        )
        self._factor_auth_code = _data(body).get("factorAuthCode")
        if not self._factor_auth_code:
            raise NoFactorAvailableError("Code delivery was not started")

    async def obtain_code(self) -> str | None:
        for attempt in range(1, self._config.code_attempts + 1):
            # Give the server time to send the message
            await self._sleep(self._config.code_retry_delay)
            try:
                code = await self._code_source.fetch_code(
                    self._mailbox, self._mailbox.subject_filter
                )
            except OSError as err:
                _LOGGER.warning("Mailbox check %d failed: %s", attempt, err)
                continue
            if code:
                _LOGGER.debug("Got one-time code on attempt %d", attempt)
                return code
            _LOGGER.debug("No code e-mail yet (attempt %d)", attempt)

        _LOGGER.error("No one-time code e-mail received")
        raise InvalidCodeError("No one-time code received")

    async def submit_code(self, code: str | None) -> tuple[str, Any]:
        body = await self._call(
            InvalidCodeError,
            "submit code",
            "POST",
            ENDPOINT_FINISH_AUTH,
            json={"factorAuthCode": self._factor_auth_code, "otp": code},
        )
        data = _data(body)
        token = data.get("token")
        if not token:
            _LOGGER.error("One-time code was rejected")
            raise InvalidCodeError("One-time code was rejected")
        self._headers["authorization"] = _b64(token)
        return _b64(token), data.get("expiresIn")

    async def verify_token(self) -> None:
        body = await self._call(
            TokenExpiredError,
            "verify access token",
            "GET",
            ENDPOINT_VALIDATE_TOKEN,
            params={"data": self._authenticated or ""},
        )
        if isinstance(body, dict) and body.get("meta", {}).get("code", 200) != 200:
            raise TokenExpiredError("Access token was not validated")


class PushAuthFlow(AuthFlow):
    """Mobile token login approved through a push notification."""

    factor_type: ClassVar[str] = FACTOR_TYPE_PUSH

    def __init__(
        self,
        transport: TransportAdapter,
        config: ArloConfig,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        super().__init__(transport, config, sleep=sleep)
        if config.mobile_token is None:
            raise ValueError("Push MFA needs a mobile token")
        self._access_token: str | None = None
        self._expires_in: Any = None
        self._validated = False

    def base_headers(self) -> dict[str, str]:
        assert self._config.mobile_token is not None
        return {
            "content-type": "application/json",
            "accept": "*/*",
            "accept-language": "en-gb",
            "user-agent": self._config.user_agent,
            "accessToken": self._config.mobile_token.get_secret_value(),
        }

    @staticmethod
    def _check_meta(body: Any, error: type[AuthError], message: str) -> dict[str, Any]:
        meta = body.get("meta", {}) if isinstance(body, dict) else {}
        if meta.get("code") != 200:
            _LOGGER.error("%s: %s", message, meta.get("message"))
            raise error(message)
        return _data(body)

    async def submit_credentials(self) -> None:
        self._validated = False
        body = await self._call(
            InvalidCredentialsError,
            "get auth token",
            "POST",
            ENDPOINT_PUSH_AUTH,
            json={
                "email": self._config.email,
                "password": self._config.password.get_secret_value(),
            },
        )
        data = self._check_meta(body, InvalidCredentialsError, "Credentials were rejected")
        self._headers["accessToken"] = data["token"]

    async def select_factor(self) -> dict[str, Any]:
        body = await self._call(
            NoFactorAvailableError, "get factors", "GET", ENDPOINT_PUSH_FACTORS
        )
        data = self._check_meta(body, NoFactorAvailableError, "Unable to list factors")
        return self._pick_factor(data.get("items"))

    async def start_factor(self, factor: dict[str, Any]) -> None:
        application_id = self._config.application_id or factor.get("applicationId", "")
        body = await self._call(
            NoFactorAvailableError,
            "start push authentication",
            "POST",
            ENDPOINT_PUSH_START,
            params={"applicationId": application_id},
            json={
                "factorId": factor["factorId"],
                "mobilePayload": self._config.mobile_payload,
            },
        )
        data = self._check_meta(body, NoFactorAvailableError, "Push was not started")
        access = data.get("accessToken") or {}
        self._access_token = access.get("token")
        self._expires_in = access.get("expiredIn")
        if not self._access_token:
            raise NoFactorAvailableError("Push was not started")
        self._headers["accessToken"] = self._access_token

    async def _token_validated(self) -> bool:
        body = await self._call(
            TokenExpiredError, "validate access token", "GET", ENDPOINT_PUSH_VALIDATE
        )
        meta = body.get("meta", {}) if isinstance(body, dict) else {}
        return meta.get("code") == 200 and bool(_data(body).get("tokenValidated"))

    async def reuse_token(self) -> tuple[str, float | None] | None:
        assert self._config.mobile_token is not None
        try:
            validated = await self._token_validated()
        except TokenExpiredError:
            return None
        if not validated:
            _LOGGER.debug("Mobile token is no longer valid, starting push handshake")
            return None
        _LOGGER.debug("Mobile token is still valid, skipping push handshake")
        return self._config.mobile_token.get_secret_value(), None

    async def obtain_code(self) -> str | None:
        for attempt in range(1, self._config.code_attempts + 1):
            if await self._token_validated():
                self._validated = True
                return None
            _LOGGER.debug("Push not approved yet (attempt %d)", attempt)
            await self._sleep(self._config.code_retry_delay)

        _LOGGER.error("Push authentication was not approved")
        raise InvalidCodeError("Push authentication was not approved")

    async def submit_code(self, code: str | None) -> tuple[str, Any]:
        assert self._access_token is not None
        return self._access_token, self._expires_in

    async def verify_token(self) -> None:
        if not self._validated and not await self._token_validated():
            raise TokenExpiredError("Access token was not validated")


def build_auth_flow(
    transport: TransportAdapter,
    config: ArloConfig,
    code_source: OneTimeCodeSource | None = None,
) -> AuthFlow:
    """Select the flow for the configured MFA mode."""
    if config.mfa_mode == MfaMode.PUSH:
        return PushAuthFlow(transport, config)
    if code_source is None:
        raise ValueError("E-mail MFA needs a one-time code source")
    return EmailAuthFlow(transport, config, code_source)


class AuthSession:
    """Owns the bearer session; the only writer of :class:`Session` values."""

    def __init__(
        self,
        transport: TransportAdapter,
        flow: AuthFlow,
        *,
        user_agent: str,
        timeout: float | None = None,
    ) -> None:
        self._transport = transport
        self._flow = flow
        self._user_agent = user_agent
        self._timeout = timeout
        self._session = Session()
        self._lock = asyncio.Lock()

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    def is_valid(self) -> bool:
        return self._session.is_valid()

    def _transition(self, state: SessionState) -> None:
        _LOGGER.debug("Session state %s -> %s", self._session.state.name, state.name)
        self._session = self._session.model_copy(update={"state": state})

    async def login(self) -> Session:
        """Run the full handshake and commit a new session.

        Raises:
            AuthError: If any step fails. The previous session is left untouched.
        """
        async with self._lock:
            previous = self._session
            _LOGGER.debug("Logging in to Arlo")
            self._transition(SessionState.AUTHENTICATING)
            try:
                token, expiry = await self._flow.authenticate(self._transition)
                session = await self._exchange(token, expiry)
            except BaseException:
                self._session = previous
                raise

            self._session = session
            _LOGGER.info("Logged in to Arlo")
            return session

    async def _exchange(self, token: str, expiry: float | None) -> Session:
        """Step 7: trade the access token for the API session."""
        headers = {
            **self._flow.headers,
            "authorization": token,
            "user-agent": self._user_agent,
        }
        try:
            response = await self._transport.request(
                "GET", ENDPOINT_SESSION, headers=headers, timeout=self._timeout
            )
        except TransportError as err:
            _LOGGER.error("Unable to start new session: %s", err)
            raise TokenExpiredError(f"Session exchange failed: {err}") from err

        data = _data(response.body)
        if not data.get("token") or not data.get("userId"):
            _LOGGER.error("Unexpected session response: %s", response.body)
            raise TokenExpiredError("Session exchange returned no token")

        return Session(
            state=SessionState.AUTHENTICATED,
            bearer_token=SecretStr(data["token"]),
            token_expiry=expiry,
            identity=Identity(
                user_id=data["userId"], serial_number=data.get("serialNumber")
            ),
        )

    def expire(self) -> None:
        """Mark the session expired after a timeout or a remote logout."""
        if self._session.state == SessionState.AUTHENTICATED:
            _LOGGER.info("Session expired")
            self._session = Session(
                state=SessionState.EXPIRED, identity=self._session.identity
            )

    async def logout(self) -> None:
        """End the session on the server and reset locally.

        Raises:
            AuthError: If the server call failed. The local session is reset anyway.
        """
        session, self._session = self._session, Session()
        if session.bearer_token is None:
            return
        try:
            await self._transport.request(
                "PUT",
                ENDPOINT_LOGOUT,
                headers={**session.auth_headers(), "user-agent": self._user_agent},
                json={},
                timeout=self._timeout,
            )
        except TransportError as err:
            _LOGGER.warning("Logout request failed: %s", err)
            raise AuthError(f"Logout failed: {err}") from err
        _LOGGER.info("Logged out of Arlo")
