"""Cryptographic primitives used by the biometric ciphers.

The provider is passed explicitly into the key derivation unit and the
ciphers so tests can substitute deterministic or failing primitives.
"""

from __future__ import annotations

import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

#: AES-256 key length in bytes.
KEY_SIZE: int = 32

#: AES-GCM nonce (IV) length in bytes.
NONCE_SIZE: int = 12

#: AES-GCM authentication tag length in bytes.
TAG_SIZE: int = 16


class CryptoProvider:
    """PBKDF2-HMAC-SHA256, AES-256-GCM and a CSPRNG backed by ``cryptography``.

    Usage::

        provider = CryptoProvider()
        material = provider.pbkdf2_sha256(b"user", b"salt", 100_000)
        aead = provider.aes_gcm(material)
    """

    def random_bytes(self, n: int) -> bytes:
        """Return ``n`` cryptographically secure random bytes."""
        return os.urandom(n)

    def pbkdf2_sha256(
        self,
        key_material: bytes,
        salt: bytes,
        iterations: int,
        length: int = KEY_SIZE,
    ) -> bytes:
        """Stretch ``key_material`` into ``length`` bytes with PBKDF2-HMAC-SHA256."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=length,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(key_material)

    def aes_gcm(self, key: bytes) -> AESGCM:
        """Build an AES-GCM AEAD instance for ``key``."""
        return AESGCM(key)
