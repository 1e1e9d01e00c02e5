"""Typed errors raised by the vault engine and the session manager."""
from typing import Optional


class VaultError(Exception):
    """Base class for every error raised by pwvault."""


class CryptoError(VaultError):
    """Bad key/IV length, Base64 decode failure or cipher padding failure."""


class AuthError(VaultError):
    """Credential rejection or a failure while talking to the auth service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StorageError(VaultError):
    """Credential-cache read or write failure."""


class ConfigError(VaultError):
    """Invalid configuration or initialization parameters."""
