"""Record-level encryption over the four biometric fields.

The key is derived once per call and shared by the four field operations,
which run concurrently in worker threads. Fields are independent: one
field failing never affects the others. An empty user id aborts the call
before any field is touched.
"""

from __future__ import annotations

import asyncio
import logging

from gft.core.crypto.errors import BiometricCryptoError
from gft.core.crypto.field_cipher import FieldCipher
from gft.core.crypto.keys import BiometricKey, require_identifier
from gft.core.crypto.models import (
    BIOMETRIC_FIELDS,
    BiometricLog,
    EncryptedBiometricLog,
    FieldResult,
    RecordDecryptionResult,
    RecordEncryptionResult,
)

logger = logging.getLogger(__name__)


class RecordCipher:
    """Encrypts and decrypts whole biometric log entries.

    Usage::

        records = RecordCipher(FieldCipher(CryptoProvider()))
        result = await records.encrypt_record(BiometricLog(weight=82.5), "user-123")
        decrypted = await records.decrypt_record(result.encrypted, "user-123")
        decrypted.weight.value  # 82.5
    """

    def __init__(self, field_cipher: FieldCipher) -> None:
        self._fields = field_cipher

    # ------------------------------------------------------------------
    # Per-field units of work
    # ------------------------------------------------------------------

    def _encrypt_field(
        self, name: str, value: float | None, key: BiometricKey
    ) -> tuple[str | None, BiometricCryptoError | None]:
        try:
            return self._fields.encrypt_with_key(value, key, field=name), None
        except BiometricCryptoError as exc:
            return None, exc

    def _decrypt_field(self, name: str, token: str | None, key: BiometricKey) -> FieldResult:
        try:
            return FieldResult(value=self._fields.decrypt_with_key(token, key, field=name))
        except BiometricCryptoError as exc:
            return FieldResult(error=exc)

    def _key_for(self, values: dict, user_id: str) -> BiometricKey | None:
        """Derive the key, skipping derivation when every field is empty."""
        require_identifier(user_id)
        if all(v is None or v == "" for v in values.values()):
            return None
        return self._fields.derive_key(user_id)

    # ------------------------------------------------------------------
    # Result assembly
    # ------------------------------------------------------------------

    @staticmethod
    def _encryption_result(
        outcomes: list[tuple[str | None, BiometricCryptoError | None]], key: BiometricKey
    ) -> RecordEncryptionResult:
        tokens: dict[str, str | None] = {}
        errors: dict[str, BiometricCryptoError] = {}
        for name, (token, error) in zip(BIOMETRIC_FIELDS, outcomes):
            tokens[name] = token
            if error is not None:
                errors[name] = error
        if errors:
            logger.warning(
                "Biometric encryption failed for fields %s (user %s)",
                sorted(errors), key.fingerprint,
            )
        return RecordEncryptionResult(encrypted=EncryptedBiometricLog(**tokens), errors=errors)

    @staticmethod
    def _decryption_result(results: list[FieldResult], key: BiometricKey) -> RecordDecryptionResult:
        record = RecordDecryptionResult(**dict(zip(BIOMETRIC_FIELDS, results)))
        if not record.ok:
            logger.warning(
                "Biometric decryption failed for fields %s (user %s)",
                record.failed_fields, key.fingerprint,
            )
        return record

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def encrypt_record(self, log: BiometricLog, user_id: str) -> RecordEncryptionResult:
        """Encrypt the four fields of ``log`` concurrently.

        Raises:
            MissingIdentifierError: If ``user_id`` is empty.
        """
        values = log.as_dict()
        key = await asyncio.to_thread(self._key_for, values, user_id)
        if key is None:
            return RecordEncryptionResult(encrypted=EncryptedBiometricLog())
        outcomes = await asyncio.gather(*(
            asyncio.to_thread(self._encrypt_field, name, values[name], key)
            for name in BIOMETRIC_FIELDS
        ))
        return self._encryption_result(list(outcomes), key)

    async def decrypt_record(
        self, encrypted: EncryptedBiometricLog, user_id: str
    ) -> RecordDecryptionResult:
        """Decrypt the four tokens of ``encrypted`` concurrently.

        Each field reports its own value or error.

        Raises:
            MissingIdentifierError: If ``user_id`` is empty.
        """
        tokens = encrypted.as_dict()
        key = await asyncio.to_thread(self._key_for, tokens, user_id)
        if key is None:
            return RecordDecryptionResult(*(FieldResult() for _ in BIOMETRIC_FIELDS))
        results = await asyncio.gather(*(
            asyncio.to_thread(self._decrypt_field, name, tokens[name], key)
            for name in BIOMETRIC_FIELDS
        ))
        return self._decryption_result(list(results), key)

    # ------------------------------------------------------------------
    # Sync API (sequential; same results)
    # ------------------------------------------------------------------

    def encrypt_record_sync(self, log: BiometricLog, user_id: str) -> RecordEncryptionResult:
        """Synchronous :meth:`encrypt_record` for callers outside an event loop."""
        values = log.as_dict()
        key = self._key_for(values, user_id)
        if key is None:
            return RecordEncryptionResult(encrypted=EncryptedBiometricLog())
        outcomes = [self._encrypt_field(name, values[name], key) for name in BIOMETRIC_FIELDS]
        return self._encryption_result(outcomes, key)

    def decrypt_record_sync(
        self, encrypted: EncryptedBiometricLog, user_id: str
    ) -> RecordDecryptionResult:
        """Synchronous :meth:`decrypt_record` for callers outside an event loop."""
        tokens = encrypted.as_dict()
        key = self._key_for(tokens, user_id)
        if key is None:
            return RecordDecryptionResult(*(FieldResult() for _ in BIOMETRIC_FIELDS))
        results = [self._decrypt_field(name, tokens[name], key) for name in BIOMETRIC_FIELDS]
        return self._decryption_result(results, key)
