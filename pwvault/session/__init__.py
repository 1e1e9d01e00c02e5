"""Session Lifecycle — authentication state, expiry countdown and the
saved-password flow for biometric re-entry.

Only one authenticated identity exists per SessionManager; nothing here
keeps module-level state.
"""

from .data import Session
from .countdown import CancellationToken, SessionCountdown
from .storage import CredentialCache, MemoryCredentialCache, FileCredentialCache
from .providers import AuthProvider, IvProvider
from .credentials import CredentialKeeper
from .manager import SessionManager, SessionState

__all__ = [
    "Session",
    "CancellationToken",
    "SessionCountdown",
    "CredentialCache",
    "MemoryCredentialCache",
    "FileCredentialCache",
    "AuthProvider",
    "IvProvider",
    "CredentialKeeper",
    "SessionManager",
    "SessionState",
]
