"""
Tests for EncryptionEngine.

Tests cover:
- Single-record encryption preserves identity fields and does not mutate input
- Batch order and all-or-nothing failure
- Configured key derivation schemes
- Saved-password protection with and without a device key
- IV fetch through the IV service
"""
from unittest.mock import AsyncMock

import pytest

from pwvault.exceptions import ConfigError, CryptoError
from pwvault.models import SecretRecord
from pwvault.session import IvProvider
from pwvault.vault import EncryptionEngine, EngineConfig
from pwvault.vault.crypto import derive_key, derive_key_pbkdf2

from conftest import IV_B64, IV_BYTES


def make_records(count: int) -> list[SecretRecord]:
    return [
        SecretRecord(
            id=f"rec-{i}",
            field_a=f"title {i}",
            field_b=f"login{i}@example.com",
            field_c=f"secret-{i}",
            owner_id="user-1",
        )
        for i in range(count)
    ]


# --- Records ---

class TestRecords:

    def test_encrypt_record_keeps_identity(self, engine, record):
        encrypted = engine.encrypt_record(record, "secret1", IV_B64)
        assert encrypted.id == record.id
        assert encrypted.owner_id == record.owner_id
        assert encrypted.field_a != record.field_a
        assert encrypted.is_encrypted() is True

    def test_input_record_unchanged(self, engine, record):
        engine.encrypt_record(record, "secret1", IV_B64)
        assert record.field_c == "s3cr3t-pässword"

    def test_round_trip(self, engine, record):
        encrypted = engine.encrypt_record(record, "secret1", IV_B64)
        assert engine.decrypt_record(encrypted, "secret1", IV_B64) == record

    def test_same_inputs_same_ciphertext(self, engine, record):
        first = engine.encrypt_record(record, "secret1", IV_B64)
        second = engine.encrypt_record(record, "secret1", IV_B64)
        assert first == second

    def test_decrypt_record_fails_on_any_field(self, engine, record):
        encrypted = engine.encrypt_record(record, "secret1", IV_B64)
        broken = encrypted.model_copy(update={"field_c": "not*base64"})
        with pytest.raises(CryptoError):
            engine.decrypt_record(broken, "secret1", IV_B64)

    def test_bad_iv(self, engine, record):
        with pytest.raises(CryptoError):
            engine.encrypt_record(record, "secret1", "QUJD")

    def test_generated_id(self):
        first = SecretRecord(field_a="a", field_b="b", field_c="c")
        second = SecretRecord(field_a="a", field_b="b", field_c="c")
        assert first.id and first.id != second.id

    def test_api_aliases(self):
        record = SecretRecord.model_validate({
            "data_Id": "abc",
            "data01": "one",
            "data02": "two",
            "data03": "three",
            "user_Id": "u-9",
        })
        assert record.id == "abc"
        assert record.fields() == ("one", "two", "three")
        assert record.owner_id == "u-9"

    def test_plain_record_not_encrypted(self, record):
        assert record.is_encrypted() is False


# --- Batches ---

class TestBatches:

    def test_batch_round_trip_preserves_order(self, engine):
        records = make_records(5)
        encrypted = engine.encrypt_batch(records, "secret1", IV_B64)
        assert [r.id for r in encrypted] == [r.id for r in records]
        decrypted = engine.decrypt_batch(encrypted, "secret1", IV_B64)
        assert decrypted == records

    def test_decrypt_batch_is_atomic(self, engine):
        encrypted = engine.encrypt_batch(make_records(5), "secret1", IV_B64)
        encrypted[2] = encrypted[2].model_copy(update={"field_b": "@@corrupt@@"})
        result = None
        with pytest.raises(CryptoError) as excinfo:
            result = engine.decrypt_batch(encrypted, "secret1", IV_B64)
        assert result is None
        assert "index 2" in str(excinfo.value)

    def test_empty_batch(self, engine):
        assert engine.encrypt_batch([], "secret1", IV_B64) == []

    def test_batch_accepts_generator(self, engine):
        records = make_records(3)
        encrypted = engine.encrypt_batch(iter(records), "secret1", IV_B64)
        assert len(encrypted) == 3


# --- Key derivation schemes ---

class TestKeyDerivation:

    def test_legacy_default(self, engine):
        assert engine.config.kdf == "legacy"
        assert engine.derive_key("abc") == (b"abc" * 11)[:32]

    def test_pbkdf2_round_trip(self, record):
        engine = EncryptionEngine(EngineConfig(kdf="pbkdf2", pbkdf2_iterations=1000))
        encrypted = engine.encrypt_record(record, "secret1", IV_B64)
        assert engine.decrypt_record(encrypted, "secret1", IV_B64) == record
        legacy = EncryptionEngine()
        assert legacy.encrypt_record(record, "secret1", IV_B64) != encrypted

    def test_pbkdf2_requires_iv(self):
        engine = EncryptionEngine(EngineConfig(kdf="pbkdf2", pbkdf2_iterations=1000))
        with pytest.raises(CryptoError):
            engine.derive_key("secret1")

    def test_material(self, engine):
        material = engine.material("secret1", IV_B64)
        assert material.iv == IV_BYTES
        assert len(material.key) == 32

    def test_material_follows_configured_kdf(self):
        engine = EncryptionEngine(EngineConfig(kdf="pbkdf2", pbkdf2_iterations=1000))
        material = engine.material("secret1", IV_B64)
        assert material.key == derive_key_pbkdf2("secret1", IV_BYTES, 1000)
        assert material.key != derive_key("secret1")


# --- Saved password ---

class TestSavedPassword:

    def test_protect_and_reveal(self, engine):
        token = engine.protect_password("secret1")
        assert engine.reveal_password(token) == "secret1"

    def test_requires_device_key(self):
        engine = EncryptionEngine()
        with pytest.raises(ConfigError):
            engine.protect_password("secret1")


# --- IV service ---

class TestFetchMaterial:

    @pytest.mark.asyncio
    async def test_fetch_material(self, engine):
        provider = AsyncMock()
        provider.get_iv = AsyncMock(return_value=IV_B64)
        material = await engine.fetch_material(provider, "user-1", "secret1")
        provider.get_iv.assert_awaited_once_with("user-1", "secret1")
        assert material.iv == IV_BYTES

    @pytest.mark.asyncio
    async def test_missing_iv(self, engine):
        provider = AsyncMock()
        provider.get_iv = AsyncMock(return_value=None)
        with pytest.raises(CryptoError):
            await engine.fetch_material(provider, "user-1", "secret1")

    @pytest.mark.asyncio
    async def test_static_iv_service(self, engine):
        class StaticIvService:
            async def get_iv(self, owner_id, password):
                return IV_B64

        service = StaticIvService()
        assert isinstance(service, IvProvider)
        material = await engine.fetch_material(service, "user-1", "secret1")
        assert material.key == engine.derive_key("secret1")
