"""
Engine Configuration — device key loading and validated cipher settings.

Reads settings from environment variables in the format:
    PWVAULT_DEVICE_KEY = <base64-encoded 32-byte key>
    PWVAULT_KDF = legacy | pbkdf2
    PWVAULT_PBKDF2_ITERATIONS = <integer>

The device key protects the saved login password used for biometric
re-entry. It is unrelated to the vault password that protects records.

Security Note:
    Never log key material. Only log which settings were loaded.
"""
import os
import base64
import binascii
import secrets
import logging
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..exceptions import ConfigError

logger = logging.getLogger("pwvault.vault")

DEVICE_KEY_LENGTH = 32
DEFAULT_PBKDF2_ITERATIONS = 600_000


def load_device_key() -> Optional[bytes]:
    """Load the device key from the PWVAULT_DEVICE_KEY environment variable.

    Returns:
        Raw 32-byte key, or None when the variable is not set.

    Raises:
        ConfigError: If the value is not base64 or does not decode to 32 bytes.
    """
    raw = os.environ.get("PWVAULT_DEVICE_KEY")
    if not raw:
        return None
    try:
        key_bytes = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as err:
        raise ConfigError("PWVAULT_DEVICE_KEY is not valid base64") from err
    if len(key_bytes) != DEVICE_KEY_LENGTH:
        raise ConfigError(
            f"PWVAULT_DEVICE_KEY must decode to exactly {DEVICE_KEY_LENGTH} "
            f"bytes, got {len(key_bytes)}"
        )
    logger.debug("Loaded device key from environment")
    return key_bytes


def generate_device_key() -> str:
    """Generate a random 32-byte device key and return as base64 string.

    This is a utility for provisioning a new device.

    Returns:
        Base64-encoded 32-byte key string.
    """
    return base64.b64encode(secrets.token_bytes(DEVICE_KEY_LENGTH)).decode("ascii")


class EngineConfig(BaseModel):
    """Validated encryption engine configuration."""

    device_key: Optional[bytes] = None
    kdf: str = Field(default="legacy")
    pbkdf2_iterations: int = Field(default=DEFAULT_PBKDF2_ITERATIONS, ge=1000)

    model_config = {"frozen": True}

    @field_validator("kdf")
    @classmethod
    def validate_kdf(cls, v: str) -> str:
        """Validate key-derivation scheme is supported."""
        v = v.lower()
        if v not in ("legacy", "pbkdf2"):
            raise ValueError(f"Unsupported key derivation: {v}")
        return v

    @field_validator("device_key")
    @classmethod
    def validate_device_key(cls, v: Optional[bytes]) -> Optional[bytes]:
        """Ensure the device key, when given, is exactly 32 bytes."""
        if v is not None and len(v) != DEVICE_KEY_LENGTH:
            raise ValueError(
                f"device_key must be {DEVICE_KEY_LENGTH} bytes, got {len(v)}"
            )
        return v

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create EngineConfig by loading values from environment.

        Returns:
            Populated EngineConfig instance.

        Raises:
            ConfigError: If any environment value is invalid.
        """
        device_key = load_device_key()
        kdf = os.environ.get("PWVAULT_KDF", "legacy")
        iterations = os.environ.get(
            "PWVAULT_PBKDF2_ITERATIONS", str(DEFAULT_PBKDF2_ITERATIONS)
        )
        try:
            return cls(
                device_key=device_key,
                kdf=kdf,
                pbkdf2_iterations=iterations,
            )
        except ValidationError as err:
            raise ConfigError(f"Invalid engine configuration: {err}") from err
