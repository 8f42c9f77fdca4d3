"""
Secret vault for custodial ledger keys.

Blob format: base64( 12-byte nonce || AES-256-GCM ciphertext+tag ).
The master key comes from Settings.encryption_key; a key that is not
exactly 32 bytes is hashed with SHA-256 to get one.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import secrets
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from winelot.core.config import get_settings
from winelot.core.errors import ConfigurationError, DecryptionError

NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32

SECRET_KEY_PREFIX = "S"
SECRET_KEY_LENGTH = 56


def derive_key(master_secret: str) -> bytes:
    raw = master_secret.encode("utf-8")
    if len(raw) == KEY_SIZE:
        return raw
    return hashlib.sha256(raw).digest()


class SecretVault:
    def __init__(self, master_secret: str):
        if not master_secret:
            raise ConfigurationError("ENCRYPTION_KEY environment variable is required")
        self._aead = AESGCM(derive_key(master_secret))

    def encrypt(self, plaintext: str) -> str:
        nonce = secrets.token_bytes(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        if not blob or not isinstance(blob, str):
            raise DecryptionError("Encrypted secret must be a non-empty string")

        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecryptionError(f"Invalid base64 encoding: {exc}")

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError(
                f"Encrypted data too short: {len(raw)} bytes (expected at least {NONCE_SIZE + TAG_SIZE})"
            )

        nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        try:
            plain = self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag:
            raise DecryptionError("Decryption failed: authentication tag mismatch. This may indicate an ENCRYPTION_KEY mismatch.")

        try:
            secret = plain.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError(f"Failed to decode decrypted data: {exc}")

        if not secret.startswith(SECRET_KEY_PREFIX):
            raise DecryptionError(
                f"Decrypted secret does not start with '{SECRET_KEY_PREFIX}'. This may indicate corruption or wrong encryption key."
            )
        if len(secret) != SECRET_KEY_LENGTH:
            raise DecryptionError(
                f"Decrypted secret has invalid length: {len(secret)} (expected {SECRET_KEY_LENGTH})."
            )
        return secret


@lru_cache(maxsize=1)
def get_vault() -> SecretVault:
    return SecretVault(get_settings().encryption_key or "")
