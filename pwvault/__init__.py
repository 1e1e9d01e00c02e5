"""PwVault.

Encryption engine and session lifecycle manager for a password-vault
client.
"""
from .version import __version__
from .exceptions import (
    VaultError,
    CryptoError,
    AuthError,
    StorageError,
    ConfigError,
)
from .vault import EncryptionEngine, EngineConfig
from .models import SecretRecord, LoginResult
from .conf import SessionConfig
from .session import (
    Session,
    SessionManager,
    SessionState,
    CredentialCache,
    MemoryCredentialCache,
    FileCredentialCache,
)

__all__ = [
    "__version__",
    "VaultError",
    "CryptoError",
    "AuthError",
    "StorageError",
    "ConfigError",
    "EncryptionEngine",
    "EngineConfig",
    "SecretRecord",
    "LoginResult",
    "SessionConfig",
    "Session",
    "SessionManager",
    "SessionState",
    "CredentialCache",
    "MemoryCredentialCache",
    "FileCredentialCache",
]
