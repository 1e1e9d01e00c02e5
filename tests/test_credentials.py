"""
Tests for the saved-password and biometric preference rules.
"""
from unittest.mock import AsyncMock

import pytest

from pwvault.conf import FLAG_BIOMETRICS_ENABLED, FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN
from pwvault.exceptions import ConfigError, StorageError
from pwvault.session import CredentialKeeper, MemoryCredentialCache
from pwvault.vault import EncryptionEngine


@pytest.fixture
def keeper(cache, engine):
    return CredentialKeeper(cache, engine)


async def enable_everything(keeper, cache):
    await keeper.set_biometric_enabled(True)
    await keeper.set_save_password_enabled(True)
    await keeper.store_on_login("secret1")


class TestSavePasswordFlag:

    @pytest.mark.asyncio
    async def test_flag_round_trip(self, keeper):
        await keeper.set_biometric_enabled(True)
        assert await keeper.get_save_password_on_next_login() is False
        await keeper.set_save_password_on_next_login(True)
        assert await keeper.get_save_password_on_next_login() is True

    @pytest.mark.asyncio
    async def test_store_on_login_consumes_flag(self, keeper, cache):
        await keeper.set_biometric_enabled(True)
        await keeper.set_save_password_on_next_login(True)
        assert await keeper.store_on_login("secret1") is True
        assert await keeper.get_save_password_on_next_login() is False
        assert await keeper.get_saved_password() == "secret1"
        assert await cache.get_saved_password() != "secret1"

    @pytest.mark.asyncio
    async def test_store_on_login_without_flag(self, keeper):
        assert await keeper.store_on_login("secret1") is False
        assert await keeper.has_saved_password() is False

    @pytest.mark.asyncio
    async def test_stale_flag_without_biometric_is_dropped(self, keeper, cache):
        await cache.set_flag(FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN, True)
        assert await keeper.is_save_password_enabled() is False
        assert await keeper.store_on_login("secret1") is False
        assert await keeper.get_save_password_on_next_login() is False
        assert await keeper.has_saved_password() is False

    @pytest.mark.asyncio
    async def test_undecryptable_saved_password(self, keeper, cache):
        await cache.set_saved_password("QUJD")
        assert await keeper.get_saved_password() is None

    @pytest.mark.asyncio
    async def test_no_device_key(self, cache):
        keeper = CredentialKeeper(cache, EncryptionEngine())
        await keeper.set_biometric_enabled(True)
        await keeper.set_save_password_on_next_login(True)
        with pytest.raises(ConfigError):
            await keeper.store_on_login("secret1")


class TestToggles:

    @pytest.mark.asyncio
    async def test_enable_requires_biometric(self, keeper):
        with pytest.raises(ConfigError):
            await keeper.set_save_password_enabled(True)
        assert await keeper.is_save_password_enabled() is False

    @pytest.mark.asyncio
    async def test_next_login_flag_requires_biometric(self, keeper, cache):
        with pytest.raises(ConfigError):
            await keeper.set_save_password_on_next_login(True)
        assert await cache.get_flag(FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN) is False
        assert await keeper.is_save_password_enabled() is False

    @pytest.mark.asyncio
    async def test_clearing_next_login_flag_without_biometric(self, keeper):
        await keeper.set_save_password_on_next_login(False)
        assert await keeper.get_save_password_on_next_login() is False

    @pytest.mark.asyncio
    async def test_enable_sets_pending_flag(self, keeper):
        await keeper.set_biometric_enabled(True)
        await keeper.set_save_password_enabled(True)
        assert await keeper.is_save_password_enabled() is True
        assert await keeper.get_save_password_on_next_login() is True

    @pytest.mark.asyncio
    async def test_disable_clears_password_and_flag(self, keeper, cache):
        await enable_everything(keeper, cache)
        await keeper.set_save_password_on_next_login(True)
        await keeper.set_save_password_enabled(False)
        assert await keeper.is_save_password_enabled() is False
        assert await cache.get_saved_password() is None
        assert await cache.get_flag(FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN) is False

    @pytest.mark.asyncio
    async def test_disabling_biometric_cascades(self, keeper, cache):
        await enable_everything(keeper, cache)
        assert await keeper.is_save_password_enabled() is True
        cache.clear_saved_password = AsyncMock(wraps=cache.clear_saved_password)

        await keeper.set_biometric_enabled(False)

        cache.clear_saved_password.assert_awaited_once()
        assert await keeper.is_biometric_enabled() is False
        assert await keeper.is_save_password_enabled() is False
        assert await cache.get_saved_password() is None

    @pytest.mark.asyncio
    async def test_disable_rolls_back_on_flag_failure(self, keeper, cache):
        await enable_everything(keeper, cache)
        stored = await cache.get_saved_password()
        original_set_flag = cache.set_flag

        async def failing_set_flag(name, value):
            if name == FLAG_SAVE_PASSWORD_ON_NEXT_LOGIN:
                raise StorageError("write failed")
            await original_set_flag(name, value)

        cache.set_flag = failing_set_flag
        with pytest.raises(StorageError):
            await keeper.set_save_password_enabled(False)
        assert await cache.get_saved_password() == stored

    @pytest.mark.asyncio
    async def test_biometric_unchanged_when_cascade_fails(self, keeper, cache):
        await enable_everything(keeper, cache)
        cache.clear_saved_password = AsyncMock(side_effect=StorageError("locked"))
        with pytest.raises(StorageError):
            await keeper.set_biometric_enabled(False)
        assert await cache.get_flag(FLAG_BIOMETRICS_ENABLED) is True
        assert await keeper.is_save_password_enabled() is True

    @pytest.mark.asyncio
    async def test_enable_biometric(self):
        keeper = CredentialKeeper(MemoryCredentialCache(), EncryptionEngine())
        await keeper.set_biometric_enabled(True)
        assert await keeper.is_biometric_enabled() is True
