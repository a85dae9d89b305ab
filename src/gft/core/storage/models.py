"""Data models for the biometric persistence layer."""

from __future__ import annotations

from dataclasses import dataclass, field

from gft.core.crypto.models import EncryptedBiometricLog


@dataclass
class StoredBiometricLog:
    """A persisted biometric check-in.

    The storage layer only ever sees tokens; plaintext is recovered by the
    record cipher with the owning user's id.
    """

    id: str
    user_id: str
    logged_at: str  # ISO 8601
    encrypted: EncryptedBiometricLog = field(default_factory=EncryptedBiometricLog)
    created_at: str = ""
