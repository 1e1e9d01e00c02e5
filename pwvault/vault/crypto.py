"""
Vault Crypto Core — Key derivation, record-field encryption and the
saved-password wrapper.

Two layers are implemented:
- Record layer: derive_key(password) → AES-256-CBC/PKCS7 with an externally
  issued IV → Base64 text. Deterministic, so a record encrypted on one
  device decrypts on another with only the password and the user's IV.
- Device layer: device_key → AES-GCM → Base64([nonce 12B][payload+tag]).
  Used only to keep the login password for biometric re-entry.

Security Note:
    derive_key() repeats and truncates the password bytes. It has no salt
    and no work factor and is kept only because existing vault data was
    encrypted with it. derive_key_pbkdf2() is the hardened alternative.
    Never log plaintext, ciphertext or key values.
"""
import os
import base64
import binascii
import logging
from typing import NamedTuple, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..exceptions import CryptoError

logger = logging.getLogger("pwvault.vault")

KEY_LENGTH = 32  # AES-256
BLOCK_SIZE = 16  # AES block, also the CBC IV size
NONCE_SIZE = 12  # 96-bit GCM nonce
TAG_SIZE = 16

IvLike = Union[bytes, bytearray, str]


class CipherMaterial(NamedTuple):
    """Derived key + IV pairing for one encrypt/decrypt operation."""
    key: bytes
    iv: bytes


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(password: str) -> bytes:
    """Derive a 32-byte key by repeating the password bytes and truncating.

    An empty password has nothing to repeat and yields 32 zero bytes.

    Args:
        password: User vault password.

    Returns:
        32-byte key.
    """
    data = (password or "").encode("utf-8")
    if not data:
        return bytes(KEY_LENGTH)
    repeats = KEY_LENGTH // len(data) + 1
    return (data * repeats)[:KEY_LENGTH]


def derive_key_pbkdf2(password: str, salt: bytes, iterations: int) -> bytes:
    """Derive a 32-byte key using PBKDF2-HMAC-SHA256.

    Args:
        password: User vault password.
        salt: Per-user salt; the engine passes the issued IV bytes.
        iterations: Work factor.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive((password or "").encode("utf-8"))


# ---------------------------------------------------------------------------
# Argument checks
# ---------------------------------------------------------------------------

def decode_iv(iv: IvLike) -> bytes:
    """Return raw IV bytes from raw bytes or Base64 text.

    Raises:
        CryptoError: If the value is not Base64 or is not exactly 16 bytes.
    """
    if isinstance(iv, str):
        try:
            raw = base64.b64decode(iv, validate=True)
        except (binascii.Error, ValueError) as err:
            raise CryptoError("IV is not valid base64") from err
    elif isinstance(iv, (bytes, bytearray)):
        raw = bytes(iv)
    else:
        raise CryptoError(f"Unsupported IV type: {type(iv).__name__}")
    if len(raw) != BLOCK_SIZE:
        raise CryptoError(
            f"IV must be exactly {BLOCK_SIZE} bytes, got {len(raw)}"
        )
    return raw


def _strip_whitespace(text: Optional[str]) -> str:
    # line breaks and spaces are not significant in Base64 text
    return "".join((text or "").split())


def _check_key(key: bytes) -> bytes:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
        size = len(key) if isinstance(key, (bytes, bytearray)) else None
        raise CryptoError(f"Key must be exactly {KEY_LENGTH} bytes, got {size}")
    return bytes(key)


# ---------------------------------------------------------------------------
# Record-layer encryption (deterministic, CBC)
# ---------------------------------------------------------------------------

def encrypt(plaintext: str, key: bytes, iv: IvLike) -> str:
    """Encrypt text with AES-256-CBC and PKCS7 padding.

    Args:
        plaintext: Text to encrypt (UTF-8 encoded before encryption).
        key: 32-byte key.
        iv: 16-byte IV, raw or Base64.

    Returns:
        Base64 ciphertext.

    Raises:
        CryptoError: If key or IV have the wrong length.
    """
    key = _check_key(key)
    raw_iv = decode_iv(iv)
    padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
    padded = padder.update((plaintext or "").encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(raw_iv)).encryptor()
    ct = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(ct).decode("ascii")


def decrypt(ciphertext: str, key: bytes, iv: IvLike) -> str:
    """Decrypt Base64 AES-256-CBC ciphertext produced by ``encrypt``.

    Raises:
        CryptoError: On invalid Base64, bad length or padding, non UTF-8
            output, or wrong key/IV length.
    """
    key = _check_key(key)
    raw_iv = decode_iv(iv)
    if not ciphertext:
        raise CryptoError("Ciphertext is empty")
    try:
        ct = base64.b64decode(_strip_whitespace(ciphertext), validate=True)
    except (binascii.Error, ValueError) as err:
        raise CryptoError("Ciphertext is not valid base64") from err
    if not ct or len(ct) % BLOCK_SIZE:
        raise CryptoError(
            f"Ciphertext length {len(ct)} is not a multiple of {BLOCK_SIZE}"
        )
    decryptor = Cipher(algorithms.AES(key), modes.CBC(raw_iv)).decryptor()
    padded = decryptor.update(ct) + decryptor.finalize()
    unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
    try:
        data = unpadder.update(padded) + unpadder.finalize()
        return data.decode("utf-8")
    except ValueError as err:
        # UnicodeDecodeError is a ValueError too
        raise CryptoError("Ciphertext could not be decrypted") from err


def is_encrypted(text: Optional[str]) -> bool:
    """Heuristic: True when ``text`` is non-empty, well-formed Base64.

    This is not a cryptographic check. Any Base64 text counts, so
    ``"QUJD"`` (plain "ABC" encoded) is reported as encrypted. Whitespace
    is ignored, so wrapped Base64 such as ``"QUJD\\n"`` counts too. Callers
    use it to decide whether a record still needs decrypting.
    """
    compact = _strip_whitespace(text)
    if not compact:
        return False
    try:
        base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


# ---------------------------------------------------------------------------
# Device-layer encryption (random nonce, GCM)
# ---------------------------------------------------------------------------

def protect(plaintext: str, device_key: bytes) -> str:
    """Encrypt a short secret under the device key.

    Format: Base64([nonce 12B][encrypted_payload + GCM_tag 16B])
    """
    cipher = AESGCM(_check_key(device_key))
    nonce = os.urandom(NONCE_SIZE)
    ct = cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(nonce + ct).decode("ascii")


def unprotect(token: str, device_key: bytes) -> str:
    """Decrypt a value produced by ``protect``.

    Raises:
        CryptoError: On malformed input or authentication failure.
    """
    cipher = AESGCM(_check_key(device_key))
    try:
        blob = base64.b64decode(token, validate=True)
    except (binascii.Error, ValueError, TypeError) as err:
        raise CryptoError("Protected value is not valid base64") from err
    _min = NONCE_SIZE + TAG_SIZE
    if len(blob) < _min:
        raise CryptoError(
            f"Protected value too short: {len(blob)} bytes (minimum {_min})"
        )
    try:
        data = cipher.decrypt(blob[:NONCE_SIZE], blob[NONCE_SIZE:], None)
        return data.decode("utf-8")
    except (InvalidTag, ValueError) as err:
        raise CryptoError("Protected value failed authentication") from err
