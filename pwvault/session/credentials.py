"""
CredentialKeeper — "remember password for biometric re-entry".

Rules enforced here:
- the login password is saved only when the save-password flag was set
  before the login, and the flag is consumed by that login;
- save-password (or its next-login flag) cannot be enabled while
  biometric re-entry is disabled;
- disabling biometric re-entry disables save-password first;
- disabling save-password clears the stored password and the flag
  together, or raises ``StorageError`` with both left as they were.

Security Note:
    The password is stored only after encryption under the device key.
    Never log it.
"""
import asyncio
import logging
from typing import Optional

from ..conf import FLAG_BIOMETRICS_ENABLED, FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN
from ..exceptions import ConfigError, CryptoError, StorageError
from ..vault.engine import EncryptionEngine
from .storage import CredentialCache

logger = logging.getLogger("pwvault.session")


class CredentialKeeper:
    """Saved-password and biometric preferences backed by a credential cache."""

    def __init__(self, cache: CredentialCache, engine: EncryptionEngine):
        self._cache = cache
        self._engine = engine
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Save-on-next-login flag
    # ------------------------------------------------------------------

    async def set_save_password_on_next_login(self, value: bool) -> None:
        """Ask the next login to save its password.

        Raises:
            ConfigError: Setting the flag while biometric re-entry is disabled.
        """
        async with self._lock:
            if value:
                await self._require_biometric()
            await self._cache.set_flag(FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN, value)
        logger.info("Save password on next login set to: %s", value)

    async def get_save_password_on_next_login(self) -> bool:
        return await self._cache.get_flag(FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN)

    # ------------------------------------------------------------------
    # Saved password
    # ------------------------------------------------------------------

    async def save_password(self, password: str) -> None:
        ciphertext = self._engine.protect_password(password)
        await self._cache.set_saved_password(ciphertext)
        logger.info("Password saved for biometric re-entry")

    async def get_saved_password(self) -> Optional[str]:
        """Return the saved login password, or None.

        A stored value that no longer decrypts (device key changed) is
        reported as missing.
        """
        ciphertext = await self._cache.get_saved_password()
        if not ciphertext:
            return None
        try:
            return self._engine.reveal_password(ciphertext)
        except (CryptoError, ConfigError) as err:
            logger.warning("Saved password cannot be decrypted: %s", err)
            return None

    async def has_saved_password(self) -> bool:
        return await self._cache.has_saved_password()

    async def store_on_login(self, password: str) -> bool:
        """Save ``password`` if the flag asks for it, then consume the flag.

        Returns:
            True when the password was saved.
        """
        async with self._lock:
            if not await self.get_save_password_on_next_login():
                return False
            if not await self._cache.get_flag(FLAG_BIOMETRICS_ENABLED):
                logger.warning(
                    "Save-password flag set without biometric re-entry, dropping it"
                )
                await self._cache.set_flag(FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN, False)
                return False
            await self.save_password(password)
            await self._cache.set_flag(FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN, False)
            return True

    # ------------------------------------------------------------------
    # Toggles
    # ------------------------------------------------------------------

    async def _require_biometric(self) -> None:
        if not await self._cache.get_flag(FLAG_BIOMETRICS_ENABLED):
            raise ConfigError(
                "Biometric re-entry must be enabled before saving the password"
            )

    async def is_save_password_enabled(self) -> bool:
        if not await self._cache.get_flag(FLAG_BIOMETRICS_ENABLED):
            return False
        if await self._cache.get_flag(FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN):
            return True
        return await self._cache.has_saved_password()

    async def set_save_password_enabled(self, enabled: bool) -> None:
        """Turn "save password" on (pending next login) or off.

        Raises:
            ConfigError: Enabling while biometric re-entry is disabled.
            StorageError: Disabling failed; nothing was changed.
        """
        async with self._lock:
            if enabled:
                await self._require_biometric()
                await self._cache.set_flag(FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN, True)
                logger.info("Save password enabled, pending next login")
            else:
                await self._disable_save_password()

    async def _disable_save_password(self) -> None:
        previous = await self._cache.get_saved_password()
        await self._cache.clear_saved_password()
        try:
            await self._cache.set_flag(FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN, False)
        except StorageError:
            if previous:
                try:
                    await self._cache.set_saved_password(previous)
                except StorageError as err:
                    logger.error("Could not restore saved password: %s", err)
            raise
        logger.info("Save password disabled, saved password cleared")

    async def is_biometric_enabled(self) -> bool:
        return await self._cache.get_flag(FLAG_BIOMETRICS_ENABLED)

    async def set_biometric_enabled(self, enabled: bool) -> None:
        """Turn biometric re-entry on or off.

        Disabling first disables "save password"; if that fails the
        biometric flag is left untouched.
        """
        async with self._lock:
            if not enabled:
                await self._disable_save_password()
            await self._cache.set_flag(FLAG_BIOMETRICS_ENABLED, enabled)
            logger.info("Biometric re-entry enabled: %s", enabled)
