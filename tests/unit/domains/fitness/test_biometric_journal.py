"""Tests for the BiometricJournal (encrypted check-ins over storage)."""

from __future__ import annotations

import asyncio
import base64
from datetime import datetime, timezone

import pytest

from conftest import FAST_ITERATIONS, FailingCryptoProvider
from gft.core.crypto.errors import (
    DecryptionFailureError,
    EncryptionFailureError,
    MissingIdentifierError,
)
from gft.core.crypto.field_cipher import FieldCipher
from gft.core.crypto.models import BiometricLog
from gft.core.crypto.record_cipher import RecordCipher
from gft.domains.fitness.domain_logic.biometric_journal import (
    BiometricJournal,
    JournalError,
    checkpoint_label,
    compute_bmi,
)


def _run(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


class TestRecord:
    def test_stores_only_tokens(self, journal: BiometricJournal, biometric_repository):
        lid = _run(journal.record("user-123", BiometricLog(weight=82.5, height=178)))
        stored = biometric_repository.get_log(lid)
        assert stored.encrypted.weight is not None
        assert "82.5" not in stored.encrypted.weight
        assert base64.b64decode(stored.encrypted.weight)
        assert stored.encrypted.body_fat is None

    def test_empty_entry_rejected(self, journal: BiometricJournal, biometric_repository):
        with pytest.raises(JournalError):
            _run(journal.record("user-123", BiometricLog()))
        assert biometric_repository.count_logs() == 0

    def test_missing_identifier(self, journal: BiometricJournal):
        with pytest.raises(MissingIdentifierError):
            _run(journal.record("", BiometricLog(weight=80.0)))

    def test_nothing_saved_when_a_field_fails(self, biometric_repository):
        cipher = RecordCipher(FieldCipher(FailingCryptoProvider(), iterations=FAST_ITERATIONS))
        journal = BiometricJournal(cipher, biometric_repository)
        with pytest.raises(EncryptionFailureError, match="weight"):
            _run(journal.record("user-123", BiometricLog(weight=82.5)))
        assert biometric_repository.count_logs() == 0

    def test_invalid_value_rejects_whole_entry(self, journal: BiometricJournal, biometric_repository):
        with pytest.raises(EncryptionFailureError, match="body_fat"):
            _run(journal.record("user-123", BiometricLog(weight=82.5, body_fat=float("inf"))))
        assert biometric_repository.count_logs() == 0

    @pytest.mark.parametrize("logged_at", ["last tuesday", "2026-13-01", "", "2026/01/15"])
    def test_unparseable_timestamp_rejected(self, journal: BiometricJournal, biometric_repository, logged_at):
        with pytest.raises(JournalError, match="ISO 8601"):
            _run(journal.record("user-123", BiometricLog(weight=80.0), logged_at=logged_at))
        assert biometric_repository.count_logs() == 0
        assert journal.checkin_status("user-123").due is True

    def test_timestamp_stored_in_utc(self, journal: BiometricJournal, biometric_repository):
        lid = _run(journal.record(
            "user-123", BiometricLog(weight=80.0), logged_at="2026-01-15T08:00:00+05:00"
        ))
        assert biometric_repository.get_log(lid).logged_at == "2026-01-15T03:00:00+00:00"


class TestHistory:
    def test_round_trip_newest_first(self, journal: BiometricJournal):
        _run(journal.record(
            "user-123", BiometricLog(weight=84.0, height=178), logged_at="2026-01-01T08:00:00+00:00"
        ))
        _run(journal.record(
            "user-123", BiometricLog(weight=82.5, body_fat=18.2, height=178),
            logged_at="2026-01-15T08:00:00+00:00",
        ))

        entries = _run(journal.history("user-123"))
        assert [e.logged_at[:10] for e in entries] == ["2026-01-15", "2026-01-01"]
        assert entries[0].record.to_log() == BiometricLog(weight=82.5, body_fat=18.2, height=178.0)
        assert entries[0].weight_change == pytest.approx(-1.5)
        assert entries[1].weight_change is None
        assert entries[0].bmi == pytest.approx(82.5 / 1.78 ** 2)

    def test_mixed_offsets_sorted_by_instant(self, journal: BiometricJournal):
        # 08:00+05:00 is 03:00 UTC, an hour before 04:00Z
        _run(journal.record("user-123", BiometricLog(weight=81.0), logged_at="2026-01-15T08:00:00+05:00"))
        _run(journal.record("user-123", BiometricLog(weight=80.0), logged_at="2026-01-15T04:00:00Z"))

        entries = _run(journal.history("user-123"))
        assert [e.record.weight.value for e in entries] == [80.0, 81.0]
        assert entries[0].weight_change == pytest.approx(-1.0)

    def test_history_is_per_user(self, journal: BiometricJournal):
        _run(journal.record("user-123", BiometricLog(weight=82.5)))
        assert _run(journal.history("user-456")) == []

    def test_corrupted_field_reported_not_hidden(self, journal: BiometricJournal, biometric_repository, biometric_db):
        lid = _run(journal.record("user-123", BiometricLog(weight=82.5, body_fat=18.2)))
        stored = biometric_repository.get_log(lid)
        raw = bytearray(base64.b64decode(stored.encrypted.weight))
        raw[0] ^= 0xFF
        biometric_db.connection.execute(
            "UPDATE biometric_logs SET weight_kg_enc = ? WHERE id = ?",
            (base64.b64encode(bytes(raw)).decode(), lid),
        )

        [entry] = _run(journal.history("user-123"))
        assert isinstance(entry.record.weight.error, DecryptionFailureError)
        assert entry.record.body_fat.value == 18.2
        assert entry.bmi is None

    def test_other_users_key_cannot_read(self, record_cipher, biometric_repository):
        journal = BiometricJournal(record_cipher, biometric_repository)
        lid = _run(journal.record("user-123", BiometricLog(weight=82.5)))
        stored = biometric_repository.get_log(lid)
        dec = _run(record_cipher.decrypt_record(stored.encrypted, "user-456"))
        assert dec.failed_fields == ["weight"]


class TestCheckinStatus:
    NOW = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)

    def test_due_when_nothing_logged(self, journal: BiometricJournal):
        status = journal.checkin_status("user-123", now=self.NOW)
        assert status.due is True
        assert status.last_logged_at is None
        assert status.checkpoint == "Initial Baseline"

    def test_not_due_within_interval(self, journal: BiometricJournal):
        _run(journal.record("user-123", BiometricLog(weight=80.0), logged_at="2026-01-25T12:00:00+00:00"))
        status = journal.checkin_status("user-123", challenge_day=20, now=self.NOW)
        assert status.days_since_last_log == 7
        assert status.due is False
        assert status.checkpoint == "Week 2 Check-In"

    def test_due_after_interval(self, journal: BiometricJournal):
        _run(journal.record("user-123", BiometricLog(weight=80.0), logged_at="2026-01-18T12:00:00Z"))
        status = journal.checkin_status("user-123", now=self.NOW)
        assert status.days_since_last_log == 14
        assert status.due is True

    def test_custom_interval(self, record_cipher, biometric_repository):
        journal = BiometricJournal(record_cipher, biometric_repository, checkin_interval_days=7)
        _run(journal.record("user-123", BiometricLog(weight=80.0), logged_at="2026-01-25T12:00:00+00:00"))
        assert journal.checkin_status("user-123", now=self.NOW).due is True


class TestHelpers:
    @pytest.mark.parametrize(
        ("day", "label"),
        [
            (0, "Initial Baseline"),
            (13, "Initial Baseline"),
            (14, "Week 2 Check-In"),
            (28, "Week 4 Check-In"),
            (41, "Week 4 Check-In"),
            (42, "Week 6 Check-In"),
            (56, "Final Measurements"),
            (90, "Final Measurements"),
        ],
    )
    def test_checkpoint_label(self, day, label):
        assert checkpoint_label(day) == label

    def test_bmi(self):
        assert compute_bmi(80.0, 200.0) == pytest.approx(20.0)
        assert compute_bmi(None, 180.0) is None
        assert compute_bmi(80.0, None) is None
        assert compute_bmi(80.0, 0.0) is None
