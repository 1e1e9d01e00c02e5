"""
EncryptionEngine — record and batch encryption for the password vault.

Provides the public API used by callers that display or store records:
- ``encrypt_record`` / ``decrypt_record`` — the three data fields of one record
- ``encrypt_batch`` / ``decrypt_batch`` — ordered, all-or-nothing sequences
- ``protect_password`` / ``reveal_password`` — device-key wrapper for the
  saved login password
- ``fetch_material`` — ask the IV service for the user's IV

Security Note:
    Never log plaintext or ciphertext values. Only log record counts and
    record ids.
"""
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Callable, Optional

from ..exceptions import ConfigError, CryptoError
from ..models import SecretRecord
from .config import EngineConfig
from .crypto import (
    CipherMaterial,
    IvLike,
    decode_iv,
    decrypt,
    derive_key,
    derive_key_pbkdf2,
    encrypt,
    is_encrypted,
    protect,
    unprotect,
)

if TYPE_CHECKING:
    from ..session.providers import IvProvider

logger = logging.getLogger("pwvault.vault")


class EncryptionEngine:
    """Stateless symmetric engine for vault records.

    The only state is the immutable ``EngineConfig``; every operation
    returns new values, so one engine can serve many threads.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self._config = config or EngineConfig()

    @property
    def config(self) -> EngineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Key material
    # ------------------------------------------------------------------

    def derive_key(self, password: str, iv: Optional[IvLike] = None) -> bytes:
        """Derive the record key with the configured scheme.

        The pbkdf2 scheme salts with the IV, so it needs one.
        """
        if self._config.kdf == "pbkdf2":
            if iv is None:
                raise CryptoError("pbkdf2 key derivation requires the IV")
            return derive_key_pbkdf2(
                password, decode_iv(iv), self._config.pbkdf2_iterations,
            )
        return derive_key(password)

    def material(self, password: str, iv: IvLike) -> CipherMaterial:
        raw_iv = decode_iv(iv)
        return CipherMaterial(self.derive_key(password, raw_iv), raw_iv)

    async def fetch_material(
        self, iv_provider: "IvProvider", owner_id: str, password: str,
    ) -> CipherMaterial:
        """Fetch the user's IV from the IV service and derive the key.

        Args:
            iv_provider: IV service (``IvProvider``).
            owner_id: User whose IV is requested.
            password: Vault password.

        Returns:
            CipherMaterial for this user.
        """
        iv_b64 = await iv_provider.get_iv(owner_id, password)
        if not iv_b64:
            raise CryptoError(f"No IV issued for user={owner_id}")
        return self.material(password, iv_b64)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    @staticmethod
    def _transform(
        record: SecretRecord, fn: Callable[[str], str],
    ) -> SecretRecord:
        field_a, field_b, field_c = (fn(value) for value in record.fields())
        return record.model_copy(
            update={"field_a": field_a, "field_b": field_b, "field_c": field_c}
        )

    def encrypt_record(
        self, record: SecretRecord, password: str, iv: IvLike,
    ) -> SecretRecord:
        """Encrypt the three data fields of ``record``.

        Returns:
            New record with the same id and owner and Base64 ciphertext fields.
        """
        key, raw_iv = self.material(password, iv)
        return self._transform(record, lambda value: encrypt(value, key, raw_iv))

    def decrypt_record(
        self, record: SecretRecord, password: str, iv: IvLike,
    ) -> SecretRecord:
        """Decrypt the three data fields of ``record``.

        Raises:
            CryptoError: On the first field that fails; nothing is returned.
        """
        key, raw_iv = self.material(password, iv)
        return self._transform(record, lambda value: decrypt(value, key, raw_iv))

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def _batch(
        self,
        records: Iterable[SecretRecord],
        fn: Callable[[str], str],
        operation: str,
    ) -> list[SecretRecord]:
        result: list[SecretRecord] = []
        for index, record in enumerate(records):
            try:
                result.append(self._transform(record, fn))
            except CryptoError as err:
                logger.error(
                    "Batch %s failed at index=%d id=%s: %s",
                    operation, index, record.id, err,
                )
                raise CryptoError(
                    f"Batch {operation} failed at index {index} (id={record.id})"
                ) from err
        logger.debug("Batch %s: %d record(s)", operation, len(result))
        return result

    def encrypt_batch(
        self, records: Iterable[SecretRecord], password: str, iv: IvLike,
    ) -> list[SecretRecord]:
        """Encrypt every record in order; any failure fails the whole batch."""
        key, raw_iv = self.material(password, iv)
        return self._batch(
            records, lambda value: encrypt(value, key, raw_iv), "encrypt",
        )

    def decrypt_batch(
        self, records: Iterable[SecretRecord], password: str, iv: IvLike,
    ) -> list[SecretRecord]:
        """Decrypt every record in order; any failure fails the whole batch."""
        key, raw_iv = self.material(password, iv)
        return self._batch(
            records, lambda value: decrypt(value, key, raw_iv), "decrypt",
        )

    @staticmethod
    def is_encrypted(text: Optional[str]) -> bool:
        return is_encrypted(text)

    # ------------------------------------------------------------------
    # Saved login password
    # ------------------------------------------------------------------

    def _device_key(self) -> bytes:
        if self._config.device_key is None:
            raise ConfigError(
                "No device key configured. "
                "Set PWVAULT_DEVICE_KEY=<base64-encoded-32-byte-key>"
            )
        return self._config.device_key

    def protect_password(self, password: str) -> str:
        """Encrypt the login password under the device key."""
        return protect(password, self._device_key())

    def reveal_password(self, token: str) -> str:
        """Decrypt a password stored by ``protect_password``."""
        return unprotect(token, self._device_key())
