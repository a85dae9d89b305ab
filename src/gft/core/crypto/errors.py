"""Error taxonomy for biometric field encryption.

Messages never carry plaintext values or tokens, only field names.
"""

from __future__ import annotations


class BiometricCryptoError(Exception):
    """Base class for biometric encryption errors."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        self.field = field
        if field:
            message = f"{field}: {message}"
        super().__init__(message)


class MissingIdentifierError(BiometricCryptoError):
    """Raised when no user identifier is available to derive a key."""


class EncryptionFailureError(BiometricCryptoError):
    """Raised when a value cannot be serialized or encrypted."""


class DecryptionFailureError(BiometricCryptoError):
    """Raised when a token is malformed, tampered with, or encrypted under another key."""


class MalformedPlaintextError(DecryptionFailureError):
    """Raised when a token decrypts but does not hold a finite number."""
