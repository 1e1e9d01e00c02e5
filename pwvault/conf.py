"""
Session Configuration — storage field names and validated session settings.

Reads optional overrides from environment variables:
    PWVAULT_TICK_INTERVAL = <seconds between countdown ticks, default 1.0>
    PWVAULT_SESSION_MINUTES = <fallback session length, default 30>
"""
import os
import logging

from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigError

logger = logging.getLogger("pwvault.session")

# Credential-cache field names for the persisted session
SESSION_USER_ID = "UserId"
SESSION_EMAIL = "Email"
SESSION_SQL_TOKEN = "SqlToken"
SESSION_ROLE = "Role"
SESSION_API_TOKEN = "ApiToken"
SESSION_EXPIRATION = "ExpirationTime"

SESSION_FIELDS = (
    SESSION_USER_ID,
    SESSION_EMAIL,
    SESSION_SQL_TOKEN,
    SESSION_ROLE,
    SESSION_API_TOKEN,
    SESSION_EXPIRATION,
)

# Fields kept by ``clear_session()`` so biometric re-entry knows the account.
SESSION_RETAINED_FIELDS = frozenset({SESSION_EMAIL})

# Flag names
FLAG_BIOMETRICS_ENABLED = "BiometricsEnabled"
FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN = "SavePasswordOnNextLogin"

DEFAULT_TICK_INTERVAL = 1.0
DEFAULT_EXPIRE_MINUTES = 30


class SessionConfig(BaseModel):
    """Validated session lifecycle settings."""

    tick_interval: float = Field(default=DEFAULT_TICK_INTERVAL, gt=0)
    default_expire_minutes: int = Field(default=DEFAULT_EXPIRE_MINUTES, ge=1)

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """Create SessionConfig from PWVAULT_* environment variables.

        Raises:
            ConfigError: If a variable is present but invalid.
        """
        values = {}
        tick = os.environ.get("PWVAULT_TICK_INTERVAL")
        if tick is not None:
            values["tick_interval"] = tick
        minutes = os.environ.get("PWVAULT_SESSION_MINUTES")
        if minutes is not None:
            values["default_expire_minutes"] = minutes
        try:
            config = cls(**values)
        except ValidationError as err:
            raise ConfigError(f"Invalid session configuration: {err}") from err
        logger.debug(
            "Session config loaded: tick_interval=%s default_expire_minutes=%s",
            config.tick_interval, config.default_expire_minutes,
        )
        return config
