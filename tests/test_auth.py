"""Tests for the login handshake."""

import base64

import pytest

from custom_components.arlo_hub.core.auth import (
    AuthSession,
    EmailAuthFlow,
    PushAuthFlow,
    token_expiry,
)
from custom_components.arlo_hub.core.config import ArloConfig, MailboxConnection, MfaMode
from custom_components.arlo_hub.core.const import (
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
)
from custom_components.arlo_hub.core.errors import (
    AuthError,
    ConnectionRefusedTransportError,
    InvalidCodeError,
    InvalidCredentialsError,
    NoFactorAvailableError,
)
from custom_components.arlo_hub.core.models import SessionState

from fakes import FakeCodeSource, FakeTransport, ok

EMAIL_FACTOR = {"factorType": "EMAIL", "factorId": "F-EMAIL"}
SMS_FACTOR = {"factorType": "SMS", "factorId": "F-SMS"}


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    return _sleep


@pytest.fixture
def email_config() -> ArloConfig:
    return ArloConfig(
        email="user@example.com",
        password="secret",
        mailbox=MailboxConnection(user="box", password="pw", host="imap.example.com"),
    )


def _email_replies(transport: FakeTransport, factors: list[dict]) -> None:
    transport.reply(
        "POST",
        ENDPOINT_AUTH,
        ok({"data": {"mfa": True, "token": "first", "authenticated": 1700000000}}),
    )
    transport.reply("GET", ENDPOINT_GET_FACTORS, ok({"data": {"items": factors}}))
    transport.reply("POST", ENDPOINT_START_AUTH, ok({"data": {"factorAuthCode": "FAC"}}))
    transport.reply(
        "POST", ENDPOINT_FINISH_AUTH, ok({"data": {"token": "access", "expiresIn": 3600}})
    )
    transport.reply("GET", ENDPOINT_VALIDATE_TOKEN, ok({"meta": {"code": 200}}))
    transport.reply(
        "GET",
        ENDPOINT_SESSION,
        ok({"data": {"token": "api-token", "userId": "U1", "serialNumber": "SN"}}),
    )


@pytest.mark.asyncio
async def test_email_login(email_config, fake_sleep, sleeps):
    transport = FakeTransport()
    _email_replies(transport, [SMS_FACTOR, EMAIL_FACTOR])
    codes = FakeCodeSource([None, "123456"])
    auth = AuthSession(
        transport,
        EmailAuthFlow(transport, email_config, codes, sleep=fake_sleep),
        user_agent="test",
    )

    session = await auth.login()

    assert session.state == SessionState.AUTHENTICATED
    assert session.is_valid()
    assert session.user_id == "U1"
    assert session.identity.serial_number == "SN"
    assert session.bearer_token.get_secret_value() == "api-token"
    assert codes.prepared == 1
    assert codes.fetched == 2
    assert sleeps == [10.0, 10.0]

    start = transport.calls_to(ENDPOINT_START_AUTH)[0]
    assert start["json"] == {"factorId": "F-EMAIL"}
    assert start["headers"]["authorization"] == _b64("first")
    finish = transport.calls_to(ENDPOINT_FINISH_AUTH)[0]
    assert finish["json"] == {"factorAuthCode": "FAC", "otp": "123456"}
    assert transport.calls_to(ENDPOINT_SESSION)[0]["headers"]["authorization"] == _b64("access")


@pytest.mark.asyncio
async def test_no_factor_leaves_session_unauthenticated(email_config, fake_sleep):
    transport = FakeTransport()
    _email_replies(transport, [SMS_FACTOR])
    auth = AuthSession(
        transport,
        EmailAuthFlow(transport, email_config, FakeCodeSource([]), sleep=fake_sleep),
        user_agent="test",
    )

    with pytest.raises(NoFactorAvailableError):
        await auth.login()

    assert auth.state == SessionState.UNAUTHENTICATED
    assert not auth.is_valid()
    assert transport.calls_to(ENDPOINT_START_AUTH) == []


@pytest.mark.asyncio
async def test_missing_code_is_bounded(email_config, fake_sleep, sleeps):
    transport = FakeTransport()
    _email_replies(transport, [EMAIL_FACTOR])
    codes = FakeCodeSource([])
    auth = AuthSession(
        transport,
        EmailAuthFlow(transport, email_config, codes, sleep=fake_sleep),
        user_agent="test",
    )

    with pytest.raises(InvalidCodeError):
        await auth.login()

    assert codes.fetched == 3
    assert sleeps == [10.0, 10.0, 10.0]
    assert auth.state == SessionState.UNAUTHENTICATED


@pytest.mark.asyncio
async def test_rejected_credentials(email_config, fake_sleep):
    transport = FakeTransport()
    transport.reply("POST", ENDPOINT_AUTH, ConnectionRefusedTransportError("401"))
    auth = AuthSession(
        transport,
        EmailAuthFlow(transport, email_config, FakeCodeSource([]), sleep=fake_sleep),
        user_agent="test",
    )

    with pytest.raises(InvalidCredentialsError):
        await auth.login()


@pytest.mark.asyncio
async def test_account_without_mfa_is_rejected(email_config, fake_sleep):
    transport = FakeTransport()
    transport.reply("POST", ENDPOINT_AUTH, ok({"data": {"mfa": False, "token": "x"}}))
    auth = AuthSession(
        transport,
        EmailAuthFlow(transport, email_config, FakeCodeSource([]), sleep=fake_sleep),
        user_agent="test",
    )

    with pytest.raises(InvalidCredentialsError):
        await auth.login()


@pytest.mark.asyncio
async def test_push_login(fake_sleep, sleeps):
    config = ArloConfig(
        email="user@example.com",
        password="secret",
        mfa_mode=MfaMode.PUSH,
        mobile_token="mobile",
        mobile_payload="payload",
        application_id="APP",
    )
    transport = FakeTransport()
    transport.reply(
        "POST", ENDPOINT_PUSH_AUTH, ok({"meta": {"code": 200}, "data": {"token": "oc"}})
    )
    transport.reply(
        "GET",
        ENDPOINT_PUSH_FACTORS,
        ok({"meta": {"code": 200}, "data": {"items": [{"factorType": "PUSH", "factorId": "P"}]}}),
    )
    transport.reply(
        "POST",
        ENDPOINT_PUSH_START,
        ok(
            {
                "meta": {"code": 200},
                "data": {"accessToken": {"token": "push-token", "expiredIn": 1800}},
            }
        ),
    )
    transport.reply(
        "GET",
        ENDPOINT_PUSH_VALIDATE,
        ok({"meta": {"code": 401, "message": "expired"}}),
        ok({"meta": {"code": 200}, "data": {"tokenValidated": False}}),
        ok({"meta": {"code": 200}, "data": {"tokenValidated": True}}),
    )
    transport.reply(
        "GET", ENDPOINT_SESSION, ok({"data": {"token": "api", "userId": "U2"}})
    )
    auth = AuthSession(
        transport, PushAuthFlow(transport, config, sleep=fake_sleep), user_agent="test"
    )

    session = await auth.login()

    assert session.user_id == "U2"
    assert sleeps == [10.0]
    assert transport.calls_to(ENDPOINT_PUSH_START)[0]["params"] == {"applicationId": "APP"}
    assert transport.calls_to(ENDPOINT_SESSION)[0]["headers"]["authorization"] == "push-token"
    # Stored token check, then polling; not checked again afterwards
    assert len(transport.calls_to(ENDPOINT_PUSH_VALIDATE)) == 3
    assert transport.calls_to(ENDPOINT_PUSH_VALIDATE)[0]["headers"]["accessToken"] == "mobile"


@pytest.mark.asyncio
async def test_push_login_reuses_valid_mobile_token(fake_sleep, sleeps):
    config = ArloConfig(
        email="user@example.com",
        password="secret",
        mfa_mode=MfaMode.PUSH,
        mobile_token="mobile",
    )
    transport = FakeTransport()
    transport.reply(
        "GET",
        ENDPOINT_PUSH_VALIDATE,
        ok({"meta": {"code": 200}, "data": {"tokenValidated": True}}),
    )
    transport.reply(
        "GET", ENDPOINT_SESSION, ok({"data": {"token": "api", "userId": "U2"}})
    )
    auth = AuthSession(
        transport, PushAuthFlow(transport, config, sleep=fake_sleep), user_agent="test"
    )

    session = await auth.login()

    assert session.state == SessionState.AUTHENTICATED
    assert session.token_expiry is None
    assert transport.calls_to(ENDPOINT_SESSION)[0]["headers"]["authorization"] == "mobile"
    for url in (ENDPOINT_PUSH_AUTH, ENDPOINT_PUSH_FACTORS, ENDPOINT_PUSH_START):
        assert transport.calls_to(url) == []
    assert sleeps == []


@pytest.mark.asyncio
async def test_expire_and_logout(email_config, fake_sleep):
    transport = FakeTransport()
    _email_replies(transport, [EMAIL_FACTOR])
    auth = AuthSession(
        transport,
        EmailAuthFlow(
            transport, email_config, FakeCodeSource(["111111", "222222"]), sleep=fake_sleep
        ),
        user_agent="test",
    )
    await auth.login()

    auth.expire()
    assert auth.state == SessionState.EXPIRED
    assert auth.session.user_id == "U1"

    await auth.login()
    transport.reply("PUT", ENDPOINT_LOGOUT, ConnectionRefusedTransportError("down"))
    with pytest.raises(AuthError):
        await auth.logout()
    assert auth.state == SessionState.UNAUTHENTICATED


def test_token_expiry_units():
    assert token_expiry(None) is None
    assert token_expiry(60, now=1000.0) == 1060.0
    assert token_expiry(1_700_000_000) == 1_700_000_000
    assert token_expiry(1_700_000_000_000) == 1_700_000_000
