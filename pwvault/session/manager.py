"""
SessionManager — owns the single authenticated session of the process.

Provides the public API for the session lifecycle:
- ``login(email, password)`` — authenticate, persist, start the countdown
- ``initialize_session(minutes)`` / ``update_session_time()`` — countdown
- ``is_session_expired()`` / ``get_remaining_time()`` — pure queries
- ``perform_full_logout(reason)`` — clear local and persisted state
- ``restore_session()`` — pick up a persisted session after restart
- save-password and biometric toggles, delegated to ``CredentialKeeper``

State machine::

    UNAUTHENTICATED --login--> AUTHENTICATED --tick reaches 0--> EXPIRING
    EXPIRING --observers notified, logout--> UNAUTHENTICATED
    AUTHENTICATED --perform_full_logout--> LOGGED_OUT

Security Note:
    Never log passwords or tokens. Only log user ids, emails and reasons.
"""
import math
import asyncio
import inspect
import logging
from enum import Enum
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from pydantic import ValidationError

from ..conf import SESSION_API_TOKEN, SESSION_EMAIL, SessionConfig
from ..exceptions import AuthError, ConfigError, StorageError
from ..models import LoginResult
from ..vault.engine import EncryptionEngine
from .countdown import SessionCountdown
from .credentials import CredentialKeeper
from .data import Session, utcnow
from .providers import AuthProvider
from .storage import CredentialCache

logger = logging.getLogger("pwvault.session")

Observer = Callable[..., Any]


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRING = "expiring"
    LOGGED_OUT = "logged_out"


class SessionManager:
    """Session lifecycle for one process.

    Login, logout and countdown ticks are serialized by one asyncio lock.
    Each armed countdown is a new session *generation*; expiry observers
    fire at most once per generation, and an expiry-driven logout never
    touches a newer generation.

    Args:
        auth: auth service (``AuthProvider``).
        cache: credential cache the session is mirrored into.
        engine: encryption engine used to protect the saved password.
        config: session settings (tick interval).
        clock: callable returning the current aware UTC datetime.
    """

    def __init__(
        self,
        auth: AuthProvider,
        cache: CredentialCache,
        engine: Optional[EncryptionEngine] = None,
        config: Optional[SessionConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._auth = auth
        self._cache = cache
        self._engine = engine or EncryptionEngine()
        self._config = config or SessionConfig()
        self._clock = clock or utcnow
        self._credentials = CredentialKeeper(cache, self._engine)
        self._lock = asyncio.Lock()
        self._countdown = SessionCountdown(
            self.update_session_time, self._config.tick_interval,
        )
        self._session: Optional[Session] = None
        self._expires_at: Optional[datetime] = None
        self._seconds_remaining = 0
        self._generation = 0
        self._notified_generation: Optional[int] = None
        self._state = SessionState.UNAUTHENTICATED
        self._expiry_observers: list[Observer] = []
        self._logout_listeners: list[Observer] = []

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def current_user(self) -> Optional[Session]:
        return self._session

    session = current_user

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def credentials(self) -> CredentialKeeper:
        return self._credentials

    @property
    def countdown(self) -> SessionCountdown:
        return self._countdown

    @property
    def expires_at(self) -> Optional[datetime]:
        return self._expires_at

    def is_authenticated(self) -> bool:
        return self._session is not None and self._session.is_authenticated(
            self._clock()
        )

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_expiry_observer(self, callback: Observer) -> None:
        """Register a callback invoked once with the expiring Session."""
        if callback not in self._expiry_observers:
            self._expiry_observers.append(callback)

    def remove_expiry_observer(self, callback: Observer) -> None:
        if callback in self._expiry_observers:
            self._expiry_observers.remove(callback)

    def add_logout_listener(self, callback: Observer) -> None:
        """Register a callback invoked with the reason after every logout."""
        if callback not in self._logout_listeners:
            self._logout_listeners.append(callback)

    def remove_logout_listener(self, callback: Observer) -> None:
        if callback in self._logout_listeners:
            self._logout_listeners.remove(callback)

    async def _notify(self, callbacks: list[Observer], *args: Any) -> None:
        for callback in list(callbacks):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as err:
                logger.error(
                    "Session callback %r failed: %s", callback, err,
                )

    # ------------------------------------------------------------------
    # Countdown
    # ------------------------------------------------------------------

    def _arm(self, expires_at: datetime) -> None:
        self._generation += 1
        self._expires_at = expires_at
        if self._session is not None:
            self._session.expires_at = expires_at
        seconds = (expires_at - self._clock()).total_seconds()
        self._seconds_remaining = max(0, math.ceil(seconds))
        self._state = SessionState.AUTHENTICATED
        self._countdown.start()

    def initialize_session(self, expire_minutes: Optional[int] = None) -> None:
        """Set the expiry ``expire_minutes`` from now and start the countdown.

        Falls back to ``SessionConfig.default_expire_minutes`` when omitted.

        Raises:
            ConfigError: If expire_minutes is not a positive integer.
        """
        if expire_minutes is None:
            expire_minutes = self._config.default_expire_minutes
        if not isinstance(expire_minutes, int) or isinstance(expire_minutes, bool) \
                or expire_minutes <= 0:
            raise ConfigError(
                f"expire_minutes must be a positive integer, got {expire_minutes!r}"
            )
        self._arm(self._clock() + timedelta(minutes=expire_minutes))
        logger.info(
            "Session initialized: expires in %d minute(s) at %s",
            expire_minutes, self._expires_at.isoformat(),
        )

    def is_session_expired(self) -> bool:
        """True when no expiry is held or the clock has reached it."""
        return self._expires_at is None or self._clock() >= self._expires_at

    def get_remaining_time(self) -> timedelta:
        if self._expires_at is None:
            return timedelta(0)
        return max(timedelta(0), self._expires_at - self._clock())

    def format_remaining(self) -> str:
        """Render the remaining time as ``HHh MMm SSs``."""
        total = int(self.get_remaining_time().total_seconds())
        hours, rest = divmod(total, 3600)
        minutes, seconds = divmod(rest, 60)
        return f"{hours:02d}h {minutes:02d}m {seconds:02d}s"

    async def update_session_time(self) -> None:
        """Advance the countdown by one tick.

        On the tick that reaches zero: stop the countdown, notify expiry
        observers once, then log out. Ticks arriving after the countdown
        was stopped do nothing.
        """
        token = self._countdown.token
        if token.cancelled:
            return
        async with self._lock:
            if token.cancelled or self._expires_at is None:
                return
            self._seconds_remaining -= 1
            if self._seconds_remaining > 0 and self._clock() < self._expires_at:
                return
            self._countdown.stop()
            self._state = SessionState.EXPIRING
            generation = self._generation
            session = self._session
            notify = self._notified_generation != generation
            self._notified_generation = generation
        logger.warning(
            "Session expired for user=%s",
            session.user_id if session else None,
        )
        if notify:
            await self._notify(self._expiry_observers, session)
        await self._logout("expired", generation=generation, expired=True)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    async def perform_full_logout(self, reason: Optional[str] = None) -> None:
        """Stop the countdown and clear the session locally and in storage.

        Storage and auth-service failures are logged; the in-memory
        session is cleared regardless.
        """
        await self._logout(reason or "user", generation=None, expired=False)

    async def _logout(
        self, reason: str, generation: Optional[int], expired: bool
    ) -> None:
        async with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug(
                    "Skipping stale %s logout for generation %d", reason, generation,
                )
                return
            if self._session is None and self._expires_at is None:
                logger.debug("Logout (%s) with no session held, nothing to do", reason)
                return
            self._countdown.stop()
            self._generation += 1
            session, self._session = self._session, None
            self._expires_at = None
            self._seconds_remaining = 0
            self._state = (
                SessionState.UNAUTHENTICATED if expired else SessionState.LOGGED_OUT
            )
            user_id = session.user_id if session else None
            if session is not None:
                session.invalidate()
            try:
                await self._cache.clear_session()
            except Exception as err:
                logger.error(
                    "Error clearing persisted session for user=%s: %s",
                    user_id, err,
                )
            try:
                await self._auth.logout()
            except Exception as err:
                logger.error("Auth service logout failed: %s", err)
        logger.info("Logout complete: user=%s reason=%s", user_id, reason)
        await self._notify(self._logout_listeners, reason)

    def shutdown(self) -> None:
        """Stop the countdown without touching session state."""
        self._countdown.stop()

    async def aclose(self) -> None:
        """Stop the countdown and wait for its task, leaving the session as is."""
        await self._countdown.aclose()

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def _authenticate(self, email: str, password: str) -> LoginResult:
        try:
            result = await self._auth.login(email, password)
        except AuthError as err:
            logger.warning("Login failed for email=%s: %s", email, err)
            raise
        except Exception as err:
            logger.error(
                "Login error for email=%s: %s - %s",
                email, type(err).__name__, err,
            )
            raise AuthError(f"Login failed: {err}") from err
        if isinstance(result, LoginResult):
            return result
        try:
            return LoginResult.model_validate(result)
        except ValidationError as err:
            raise AuthError(f"Malformed login response: {err}") from err

    async def login(self, email: str, password: str) -> Session:
        """Authenticate and install a fresh session.

        Raises:
            AuthError: Credentials rejected or auth service unreachable;
                any existing session is left untouched.
            StorageError: The new session could not be persisted; any
                existing session is left untouched.
        """
        logger.info("Attempting login for email=%s", email)
        result = await self._authenticate(email, password)
        async with self._lock:
            expires_at = self._clock() + timedelta(minutes=result.expire_minutes)
            session = Session(
                user_id=result.user_id,
                api_token=result.api_token,
                sql_token=result.sql_token,
                expires_at=expires_at,
                role=result.role,
                email=email,
            )
            await self._cache.set_session(session)
            previous, self._session = self._session, session
            self.initialize_session(result.expire_minutes)
            if previous is not None:
                previous.invalidate()
        logger.info("Login successful for user=%s", session.user_id)
        try:
            if await self._credentials.store_on_login(password):
                logger.info("Password saved for next biometric login")
        except Exception as err:
            # the login itself already succeeded
            logger.error("Error saving password: %s", err)
        return session

    async def login_with_saved_password(self) -> Session:
        """Log in again with the password saved for biometric re-entry.

        The caller is responsible for the biometric check itself.

        Raises:
            AuthError: Biometric re-entry disabled or nothing saved.
        """
        if not await self._credentials.is_biometric_enabled():
            raise AuthError("Biometric re-entry is not enabled")
        email = await self._cache.get_field(SESSION_EMAIL)
        password = await self._credentials.get_saved_password()
        if not email or not password:
            raise AuthError("No saved credentials for biometric re-entry")
        return await self.login(email, password)

    async def restore_session(self) -> Optional[Session]:
        """Rebuild the session persisted by a previous process.

        Returns:
            The restored Session, or None when nothing valid is stored.
            Expired or incomplete stored sessions are cleared.
        """
        async with self._lock:
            if self._session is not None:
                return self._session
            fields = await self._cache.get_session_fields()
            session = Session.from_storage(fields)
            if session is None or not session.is_authenticated(self._clock()):
                if fields.get(SESSION_API_TOKEN):
                    logger.info("Stored session expired or incomplete, clearing")
                    try:
                        await self._cache.clear_session()
                    except StorageError as err:
                        logger.error("Error clearing stored session: %s", err)
                return None
            self._session = session
            self._arm(session.expires_at)
        logger.info(
            "Session restored for user=%s, %s remaining",
            session.user_id, self.format_remaining(),
        )
        return session

    # ------------------------------------------------------------------
    # Saved password and biometric preferences
    # ------------------------------------------------------------------

    async def set_save_password_on_next_login(self, value: bool) -> None:
        await self._credentials.set_save_password_on_next_login(value)

    async def get_save_password_on_next_login(self) -> bool:
        return await self._credentials.get_save_password_on_next_login()

    async def set_save_password_enabled(self, enabled: bool) -> None:
        await self._credentials.set_save_password_enabled(enabled)

    async def is_save_password_enabled(self) -> bool:
        return await self._credentials.is_save_password_enabled()

    async def set_biometric_enabled(self, enabled: bool) -> None:
        await self._credentials.set_biometric_enabled(enabled)

    async def is_biometric_enabled(self) -> bool:
        return await self._credentials.is_biometric_enabled()

    async def get_saved_password(self) -> Optional[str]:
        return await self._credentials.get_saved_password()
