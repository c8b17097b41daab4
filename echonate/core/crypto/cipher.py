#!/usr/bin/env python3
"""
EchoNate Core Crypto — Credential Cipher
==========================================
AES-256-GCM encryption for stored site credentials.

The 256-bit key lives in its own file (mode 0600 on POSIX), created on
first use. Ciphertext is ``base64(nonce || ciphertext+tag)`` so a record is
a single printable string that survives the JSON state file.

Import from: echonate.core.crypto.cipher
"""

import base64
import binascii
import logging
import os
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from echonate.core.constants import AES_KEY_BITS, AES_NONCE_BYTES

__all__ = ['CredentialCipher', 'CipherError']

logger = logging.getLogger("echonate.core.crypto.cipher")


class CipherError(Exception):
    """Ciphertext could not be decoded or failed authentication."""


class CredentialCipher:
    """Symmetric AEAD cipher with ``encrypt(bytes) -> str`` / ``decrypt(str) -> bytes``."""

    method = "AES-256-GCM"

    def __init__(self, key: bytes):
        if len(key) * 8 != AES_KEY_BITS:
            raise ValueError(f"Key must be {AES_KEY_BITS} bits")
        self._aead = AESGCM(key)

    @classmethod
    def from_key_file(cls, key_file: Path) -> 'CredentialCipher':
        """Load the key from ``key_file``, generating it if absent."""
        key_file = Path(key_file)
        key_file.parent.mkdir(parents=True, exist_ok=True)
        if key_file.exists():
            key = key_file.read_bytes()
        else:
            key = AESGCM.generate_key(bit_length=AES_KEY_BITS)
            key_file.write_bytes(key)
            if os.name != 'nt':
                os.chmod(key_file, 0o600)
            logger.info("Generated credential key at %s", key_file)
        return cls(key)

    @classmethod
    def ephemeral(cls) -> 'CredentialCipher':
        """Cipher with a throwaway in-memory key."""
        return cls(AESGCM.generate_key(bit_length=AES_KEY_BITS))

    def encrypt(self, plaintext: bytes) -> str:
        nonce = os.urandom(AES_NONCE_BYTES)
        sealed = self._aead.encrypt(nonce, plaintext, None)
        return base64.b64encode(nonce + sealed).decode('ascii')

    def decrypt(self, token: str) -> bytes:
        try:
            raw = base64.b64decode(token.encode('ascii'), validate=True)
        except (binascii.Error, UnicodeEncodeError, AttributeError) as e:
            raise CipherError(f"Malformed ciphertext: {e}") from e
        if len(raw) <= AES_NONCE_BYTES:
            raise CipherError("Ciphertext too short")
        try:
            return self._aead.decrypt(raw[:AES_NONCE_BYTES], raw[AES_NONCE_BYTES:], None)
        except InvalidTag as e:
            raise CipherError("Ciphertext failed authentication") from e
