"""Record shapes exchanged with the biometric record cipher."""

from __future__ import annotations

from dataclasses import dataclass, field, fields

from gft.core.crypto.errors import BiometricCryptoError

#: The four independently encrypted fields of a biometric log entry.
BIOMETRIC_FIELDS: tuple[str, ...] = ("weight", "body_fat", "muscle_mass", "height")


@dataclass(frozen=True)
class BiometricLog:
    """Plaintext measurements for one entry. ``None`` means not collected."""

    weight: float | None = None        # kg
    body_fat: float | None = None      # %
    muscle_mass: float | None = None   # %
    height: float | None = None        # cm

    def as_dict(self) -> dict[str, float | None]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def is_empty(self) -> bool:
        return all(v is None for v in self.as_dict().values())


@dataclass(frozen=True)
class EncryptedBiometricLog:
    """Tokens for one entry, one per field; ``None`` where nothing was collected."""

    weight: str | None = None
    body_fat: str | None = None
    muscle_mass: str | None = None
    height: str | None = None

    def as_dict(self) -> dict[str, str | None]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class FieldResult:
    """Outcome of decrypting one field.

    ``value is None and error is None`` means the field was never collected;
    ``error`` set means a token was stored but could not be recovered.
    """

    value: float | None = None
    error: BiometricCryptoError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RecordEncryptionResult:
    """Tokens for every field plus the errors of fields that failed."""

    encrypted: EncryptedBiometricLog
    errors: dict[str, BiometricCryptoError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class RecordDecryptionResult:
    """Per-field decryption outcomes for one entry."""

    weight: FieldResult
    body_fat: FieldResult
    muscle_mass: FieldResult
    height: FieldResult

    def results(self) -> dict[str, FieldResult]:
        return {name: getattr(self, name) for name in BIOMETRIC_FIELDS}

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results().values())

    @property
    def failed_fields(self) -> list[str]:
        return [name for name, r in self.results().items() if not r.ok]

    def to_log(self) -> BiometricLog:
        """Plaintext view with failed fields degraded to ``None``."""
        return BiometricLog(**{name: r.value for name, r in self.results().items()})
