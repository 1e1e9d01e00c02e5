"""Vault Engine — Symmetric protection for password-vault records.

Security Note (Threat Model):
    Record keys are derived from the vault password alone (plus the
    issued IV when pbkdf2 is configured). Decrypted records live in
    process memory only while displayed or edited; they are never
    written back to storage in plaintext.
"""

from .crypto import CipherMaterial, derive_key, encrypt, decrypt, is_encrypted
from .config import EngineConfig, load_device_key, generate_device_key
from .engine import EncryptionEngine

__all__ = [
    "CipherMaterial",
    "derive_key",
    "encrypt",
    "decrypt",
    "is_encrypted",
    "EngineConfig",
    "load_device_key",
    "generate_device_key",
    "EncryptionEngine",
]
