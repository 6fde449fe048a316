"""Engine configuration."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from .const import DEFAULT_USER_AGENT, MFA_EMAIL_SUBJECT


class MfaMode(str, Enum):
    """Second factor delivery used during login."""

    EMAIL = "email"
    PUSH = "push"


class MailboxConnection(BaseModel):
    """IMAP account receiving the one-time codes."""

    model_config = ConfigDict(frozen=True)

    user: str
    password: SecretStr
    host: str
    port: int = 993
    subject_filter: str = MFA_EMAIL_SUBJECT


class ReconnectPolicy(BaseModel):
    """Capped exponential backoff for the push channel.

    ``max_attempts`` of None retries for as long as the session is logged in.
    """

    model_config = ConfigDict(frozen=True)

    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=300.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_attempts: int | None = Field(default=None, ge=1)

    def delay_for(self, attempt: int) -> float:
        """Delay before reconnect ``attempt`` (1-based)."""
        if attempt <= 1:
            return 0.0
        return min(self.initial_delay * self.multiplier ** (attempt - 2), self.max_delay)


class ArloConfig(BaseModel):
    """Everything the engine needs to log in and stay connected."""

    email: str
    password: SecretStr
    mfa_mode: MfaMode = MfaMode.EMAIL
    mailbox: MailboxConnection | None = None

    # Push flow
    mobile_token: SecretStr | None = None
    mobile_payload: str | None = None
    application_id: str | None = None

    # Bounded one-time code poll
    code_attempts: int = Field(default=3, ge=1)
    code_retry_delay: float = Field(default=10.0, ge=0)

    refresh_interval: float | None = Field(default=None, gt=0)
    keep_alive_interval: float = Field(default=20.0, gt=0)
    relogin_delay: float = Field(default=300.0, ge=0)
    local_token_window: float = Field(default=300.0, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)
    reconnect: ReconnectPolicy = Field(default_factory=ReconnectPolicy)

    installation_id: str | None = None
    certificate_dir: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
