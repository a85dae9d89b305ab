"""AES-GCM encryption of single biometric values.

Token layout (standard base64)::

    IV (12 bytes) || ciphertext || tag (16 bytes)

The plaintext is the value's canonical decimal string, the same text a
JavaScript ``Number.prototype.toString`` produces, so tokens written by the
web client and by this package are interchangeable.
"""

from __future__ import annotations

import base64
import binascii
import logging
import math
import re
from decimal import Decimal

from gft.core.crypto.errors import (
    BiometricCryptoError,
    DecryptionFailureError,
    EncryptionFailureError,
    MalformedPlaintextError,
)
from gft.core.crypto.keys import (
    DEFAULT_ITERATIONS,
    DEFAULT_SALT_PREFIX,
    BiometricKey,
    derive_biometric_key,
)
from gft.core.crypto.provider import NONCE_SIZE, TAG_SIZE, CryptoProvider

logger = logging.getLogger(__name__)

# Text a JavaScript Number#toString can produce for a finite number
_DECIMAL_TEXT = re.compile(r"-?\d+(?:\.\d+)?(?:e[+-]\d+)?")


def canonical_decimal(value: float) -> str:
    """Shortest round-trip decimal text for ``value`` in ECMAScript notation.

    ``178.0 -> "178"``, ``82.5 -> "82.5"``, ``1e21 -> "1e+21"``,
    ``1e-7 -> "1e-7"``.
    """
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    k = len(digits)
    n = exponent + k  # value == 0.<digits> * 10**n

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = digits[:n] + "." + digits[n:]
    elif -6 < n <= 0:
        text = "0." + "0" * (-n) + digits
    else:
        e = n - 1
        mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
        text = f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
    return sign + text


def _coerce_value(value: object, field: str | None) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EncryptionFailureError(
            f"expected a number, got {type(value).__name__}", field=field
        )
    try:
        number = float(value)
    except OverflowError as exc:
        raise EncryptionFailureError("value must be a finite number", field=field) from exc
    if not math.isfinite(number):
        raise EncryptionFailureError("value must be a finite number", field=field)
    return number


class FieldCipher:
    """Encrypts and decrypts individual biometric values for one user at a time.

    Usage::

        cipher = FieldCipher(CryptoProvider())
        token = cipher.encrypt(82.5, "user-123")
        cipher.decrypt(token, "user-123")  # 82.5
    """

    def __init__(
        self,
        provider: CryptoProvider,
        *,
        salt_prefix: str = DEFAULT_SALT_PREFIX,
        iterations: int = DEFAULT_ITERATIONS,
    ) -> None:
        self._provider = provider
        self._salt_prefix = salt_prefix
        self._iterations = iterations

    def derive_key(self, user_id: str) -> BiometricKey:
        """Derive the key for ``user_id`` with this cipher's parameters."""
        return derive_biometric_key(
            user_id,
            self._provider,
            salt_prefix=self._salt_prefix,
            iterations=self._iterations,
        )

    # ------------------------------------------------------------------
    # Single-call API (derives the key per call)
    # ------------------------------------------------------------------

    def encrypt(self, value: float | None, user_id: str) -> str | None:
        """Encrypt ``value`` for ``user_id``.

        Returns:
            The base64 token, or ``None`` when ``value`` is ``None``.

        Raises:
            MissingIdentifierError: If ``user_id`` is empty.
            EncryptionFailureError: If the value is not a finite number or
                the primitives fail.
        """
        if value is None:
            return None
        return self.encrypt_with_key(value, self.derive_key(user_id))

    def decrypt(self, token: str | None, user_id: str) -> float | None:
        """Decrypt a token produced by :meth:`encrypt` for the same user.

        Returns:
            The original value, or ``None`` when no token is stored.

        Raises:
            MissingIdentifierError: If ``user_id`` is empty.
            DecryptionFailureError: If the token is malformed, tampered with,
                or was encrypted for a different user.
        """
        if not token:
            return None
        return self.decrypt_with_key(token, self.derive_key(user_id))

    # ------------------------------------------------------------------
    # Pre-derived key API (used by RecordCipher)
    # ------------------------------------------------------------------

    def encrypt_with_key(
        self, value: float | None, key: BiometricKey, *, field: str | None = None
    ) -> str | None:
        """Encrypt ``value`` under an already derived key."""
        if value is None:
            return None
        number = _coerce_value(value, field)
        try:
            nonce = self._provider.random_bytes(NONCE_SIZE)
            if len(nonce) != NONCE_SIZE:
                raise ValueError(f"provider returned a {len(nonce)}-byte IV")
            sealed = key.encrypt(nonce, canonical_decimal(number).encode("utf-8"))
            return base64.b64encode(nonce + sealed).decode("ascii")
        except BiometricCryptoError:
            raise
        except Exception as exc:
            logger.error(
                "Encryption failed for field %s (user %s): %s",
                field or "-", key.fingerprint, type(exc).__name__,
            )
            raise EncryptionFailureError(f"encryption failed: {type(exc).__name__}", field=field) from exc

    def decrypt_with_key(
        self, token: str | None, key: BiometricKey, *, field: str | None = None
    ) -> float | None:
        """Decrypt ``token`` under an already derived key."""
        if not token:
            return None
        try:
            combined = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError, TypeError) as exc:
            raise DecryptionFailureError("token is not valid base64", field=field) from exc

        if len(combined) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionFailureError("token is too short", field=field)

        nonce, sealed = combined[:NONCE_SIZE], combined[NONCE_SIZE:]
        try:
            plaintext = key.decrypt(nonce, sealed)
        except DecryptionFailureError as exc:
            raise DecryptionFailureError(str(exc), field=field) from exc

        try:
            text = plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedPlaintextError("decrypted value is not a number", field=field) from exc
        if not _DECIMAL_TEXT.fullmatch(text):
            raise MalformedPlaintextError("decrypted value is not a number", field=field)
        number = float(text)
        if not math.isfinite(number):
            raise MalformedPlaintextError("decrypted value is not a finite number", field=field)
        return number
