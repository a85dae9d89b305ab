"""Per-user key derivation for biometric fields.

The key is derived from the user identifier alone: the identifier is the
PBKDF2 input and also seeds the salt. Anyone who knows the identifier and
this scheme can re-derive the key, so the protection is against casual
inspection of stored values (a database browser), not against an attacker
with client access. Existing tokens depend on these exact parameters.
"""

from __future__ import annotations

import hashlib
import logging

from cryptography.exceptions import InvalidTag

from gft.core.crypto.errors import DecryptionFailureError, MissingIdentifierError
from gft.core.crypto.provider import KEY_SIZE, CryptoProvider

logger = logging.getLogger(__name__)

DEFAULT_SALT_PREFIX = "gft-biometric-v1-"
DEFAULT_ITERATIONS = 100_000

# Number of leading identifier characters appended to the salt prefix.
_SALT_ID_CHARS = 8


def fingerprint(user_id: str) -> str:
    """Short SHA-256 fingerprint of a user id, safe to put in logs."""
    return hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:12]


def require_identifier(user_id: object) -> str:
    """Return ``user_id`` if it is a non-blank string.

    Raises:
        MissingIdentifierError: If the identifier is missing or blank.
    """
    if not isinstance(user_id, str) or not user_id.strip():
        raise MissingIdentifierError("A user identifier is required to derive the biometric key")
    return user_id


class BiometricKey:
    """A derived AES-256-GCM key bound to one user.

    Only ``encrypt`` and ``decrypt`` are exposed; the key bytes are not
    retrievable from this object.
    """

    __slots__ = ("_aead", "_fingerprint")

    def __init__(self, aead, user_fingerprint: str) -> None:
        self._aead = aead
        self._fingerprint = user_fingerprint

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    def encrypt(self, nonce: bytes, plaintext: bytes) -> bytes:
        """Return ciphertext with the 16-byte tag appended."""
        return self._aead.encrypt(nonce, plaintext, None)

    def decrypt(self, nonce: bytes, ciphertext: bytes) -> bytes:
        """Authenticate and decrypt ``ciphertext`` (tag appended).

        Raises:
            DecryptionFailureError: If authentication fails.
        """
        try:
            return self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag as exc:
            raise DecryptionFailureError(
                "authentication failed: token was tampered with or encrypted for another user"
            ) from exc

    def __repr__(self) -> str:
        return f"BiometricKey(user={self._fingerprint})"


def derive_biometric_key(
    user_id: str,
    provider: CryptoProvider,
    *,
    salt_prefix: str = DEFAULT_SALT_PREFIX,
    iterations: int = DEFAULT_ITERATIONS,
) -> BiometricKey:
    """Derive the AES-256-GCM key for ``user_id``.

    PBKDF2-HMAC-SHA256 over the UTF-8 identifier, salted with
    ``salt_prefix + user_id[:8]``.

    Args:
        user_id: Stable per-user identifier (e.g. an account UUID).
        provider: Source of the PBKDF2 and AES-GCM primitives.
        salt_prefix: Application namespacing string.
        iterations: PBKDF2 iteration count.

    Returns:
        A key usable only for AES-GCM encryption and decryption.

    Raises:
        MissingIdentifierError: If ``user_id`` is empty.
    """
    user_id = require_identifier(user_id)
    salt = (salt_prefix + user_id[:_SALT_ID_CHARS]).encode("utf-8")
    material = provider.pbkdf2_sha256(user_id.encode("utf-8"), salt, iterations, KEY_SIZE)
    key = BiometricKey(provider.aes_gcm(material), fingerprint(user_id))
    logger.debug("Derived biometric key for user %s", key.fingerprint)
    return key
