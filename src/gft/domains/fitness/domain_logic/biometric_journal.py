"""Biometric journal — encrypted check-ins over the course of a challenge.

Composes the record cipher with the biometric repository: values are
encrypted before they reach storage and decrypted per field on read, so a
single unreadable field never hides the rest of an entry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from gft.core.crypto.errors import EncryptionFailureError
from gft.core.crypto.keys import fingerprint, require_identifier
from gft.core.crypto.models import BiometricLog, RecordDecryptionResult
from gft.core.crypto.record_cipher import RecordCipher
from gft.core.storage.repository import BiometricRepository

logger = logging.getLogger(__name__)

DEFAULT_CHECKIN_INTERVAL_DAYS = 14

# (first challenge day, label), ascending
_CHECKPOINTS: tuple[tuple[int, str], ...] = (
    (0, "Initial Baseline"),
    (14, "Week 2 Check-In"),
    (28, "Week 4 Check-In"),
    (42, "Week 6 Check-In"),
    (56, "Final Measurements"),
)


class JournalError(Exception):
    """Raised when a journal entry is rejected before encryption."""


def compute_bmi(weight_kg: float | None, height_cm: float | None) -> float | None:
    """Body-mass index, or None unless both measurements are usable."""
    if weight_kg is None or height_cm is None or height_cm <= 0:
        return None
    meters = height_cm / 100
    return weight_kg / (meters * meters)


def checkpoint_label(challenge_day: int) -> str:
    """Name of the measurement checkpoint for a day of the challenge."""
    label = _CHECKPOINTS[0][1]
    for first_day, name in _CHECKPOINTS:
        if challenge_day >= first_day:
            label = name
    return label


def _parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_timestamp(value: str) -> str:
    """Validate an ISO 8601 timestamp and rewrite it in UTC.

    Stored timestamps share one offset so they sort chronologically as text.
    """
    try:
        parsed = _parse_iso(value)
    except (TypeError, ValueError) as exc:
        raise JournalError(f"logged_at must be an ISO 8601 timestamp, got {value!r}") from exc
    return parsed.astimezone(timezone.utc).isoformat()


@dataclass
class DecryptedBiometricEntry:
    """One check-in as shown to its owner."""

    id: str
    logged_at: str
    record: RecordDecryptionResult
    bmi: float | None = None
    weight_change: float | None = None  # vs. the previous (older) entry


@dataclass
class CheckinStatus:
    """Whether the user should be prompted for new measurements."""

    last_logged_at: str | None
    days_since_last_log: int | None
    due: bool
    checkpoint: str


class BiometricJournal:
    """Writes and reads a user's encrypted biometric check-ins.

    Usage::

        journal = BiometricJournal(record_cipher, repository)
        log_id = await journal.record("user-123", BiometricLog(weight=82.5))
        entries = await journal.history("user-123")
    """

    def __init__(
        self,
        cipher: RecordCipher,
        repository: BiometricRepository,
        *,
        checkin_interval_days: int = DEFAULT_CHECKIN_INTERVAL_DAYS,
    ) -> None:
        self._cipher = cipher
        self._repo = repository
        self._interval = checkin_interval_days

    async def record(
        self,
        user_id: str,
        log: BiometricLog,
        *,
        logged_at: str | None = None,
    ) -> str:
        """Encrypt and persist one check-in.

        Nothing is stored unless every provided field encrypted cleanly.

        Returns:
            The new log ID.

        Raises:
            MissingIdentifierError: If ``user_id`` is empty.
            JournalError: If no measurement was provided or ``logged_at``
                is not an ISO 8601 timestamp.
            EncryptionFailureError: If any field failed to encrypt.
        """
        require_identifier(user_id)
        if log.is_empty():
            raise JournalError("At least one measurement is required")
        if logged_at is not None:
            logged_at = _normalize_timestamp(logged_at)

        result = await self._cipher.encrypt_record(log, user_id)
        if not result.ok:
            failed = sorted(result.errors)
            raise EncryptionFailureError(
                f"could not encrypt {', '.join(failed)}; entry not saved"
            ) from next(iter(result.errors.values()))

        log_id = self._repo.save_log(user_id, result.encrypted, logged_at=logged_at)
        logger.info("Recorded biometric check-in %s (user %s)", log_id, fingerprint(user_id))
        return log_id

    async def history(self, user_id: str, *, limit: int = 50) -> list[DecryptedBiometricEntry]:
        """Decrypt a user's check-ins, newest first.

        Raises:
            MissingIdentifierError: If ``user_id`` is empty.
        """
        require_identifier(user_id)
        stored = self._repo.get_logs(user_id, limit=limit)

        entries: list[DecryptedBiometricEntry] = []
        for row in stored:
            record = await self._cipher.decrypt_record(row.encrypted, user_id)
            entries.append(DecryptedBiometricEntry(
                id=row.id,
                logged_at=row.logged_at,
                record=record,
                bmi=compute_bmi(record.weight.value, record.height.value),
            ))

        for newer, older in zip(entries, entries[1:]):
            if newer.record.weight.value is not None and older.record.weight.value is not None:
                newer.weight_change = newer.record.weight.value - older.record.weight.value

        return entries

    def checkin_status(
        self,
        user_id: str,
        *,
        challenge_day: int = 0,
        now: datetime | None = None,
    ) -> CheckinStatus:
        """Decide whether a new check-in is due.

        Due when nothing has been logged yet or the last entry is at least
        ``checkin_interval_days`` old. Reads only timestamps, never tokens.
        """
        require_identifier(user_id)
        now = now or datetime.now(timezone.utc)
        latest = self._repo.get_latest_log(user_id)
        label = checkpoint_label(challenge_day)

        if latest is None:
            return CheckinStatus(
                last_logged_at=None, days_since_last_log=None, due=True, checkpoint=label
            )

        days = (now - _parse_iso(latest.logged_at)).days
        return CheckinStatus(
            last_logged_at=latest.logged_at,
            days_since_last_log=days,
            due=days >= self._interval,
            checkpoint=label,
        )
