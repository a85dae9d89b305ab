"""Biometric log repository — CRUD over encrypted check-ins.

The repository stores and returns tokens only. It never encrypts or
decrypts; that is the record cipher's job, done with the owning user's id.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from gft.core.crypto.keys import fingerprint
from gft.core.crypto.models import EncryptedBiometricLog
from gft.core.storage.database import BiometricDatabase
from gft.core.storage.models import StoredBiometricLog

logger = logging.getLogger(__name__)

# Record field -> storage column
_COLUMNS: dict[str, str] = {
    "weight": "weight_kg_enc",
    "body_fat": "body_fat_enc",
    "muscle_mass": "muscle_mass_enc",
    "height": "height_cm_enc",
}


class RepositoryError(Exception):
    """Raised when repository operations fail."""


class BiometricRepository:
    """CRUD repository for encrypted biometric logs.

    Usage::

        db = BiometricDatabase(":memory:")
        db.initialize()
        repo = BiometricRepository(db)

        log_id = repo.save_log("user-123", encrypted)
        history = repo.get_logs("user-123", limit=30)
    """

    def __init__(self, database: BiometricDatabase) -> None:
        self._db = database

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(timezone.utc).isoformat()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save_log(
        self,
        user_id: str,
        encrypted: EncryptedBiometricLog,
        *,
        logged_at: str | None = None,
        log_id: str = "",
    ) -> str:
        """Persist one encrypted check-in.

        Args:
            user_id: Owner of the entry.
            encrypted: The four tokens (``None`` where not collected).
            logged_at: ISO 8601 time of the measurement. Defaults to now.
            log_id: Optional explicit id; a UUID is generated when empty.

        Returns:
            The log ID.
        """
        if not user_id:
            raise RepositoryError("user_id is required")

        lid = log_id or self._new_id()
        tokens = encrypted.as_dict()
        conn = self._db.connection
        conn.execute(
            """INSERT INTO biometric_logs (
                id, user_id, logged_at,
                weight_kg_enc, body_fat_enc, muscle_mass_enc, height_cm_enc,
                created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                lid,
                user_id,
                logged_at or self._now_iso(),
                tokens["weight"],
                tokens["body_fat"],
                tokens["muscle_mass"],
                tokens["height"],
                self._now_iso(),
            ),
        )
        conn.commit()
        logger.info("Saved biometric log %s (user %s)", lid, fingerprint(user_id))
        return lid

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_log(self, log_id: str, *, user_id: str | None = None) -> StoredBiometricLog | None:
        """Retrieve a log by ID, optionally scoped to its owner."""
        query = "SELECT * FROM biometric_logs WHERE id = ?"
        params: list[Any] = [log_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        row = self._db.connection.execute(query, params).fetchone()
        if row is None:
            return None
        return self._row_to_log(row)

    def get_logs(
        self,
        user_id: str,
        *,
        since: str | None = None,
        until: str | None = None,
        limit: int = 100,
    ) -> list[StoredBiometricLog]:
        """Query a user's logs.

        Args:
            user_id: Owner of the logs.
            since: ISO 8601 lower bound on ``logged_at`` (inclusive).
            until: ISO 8601 upper bound on ``logged_at`` (inclusive).
            limit: Maximum results to return.

        Returns:
            Logs newest first.
        """
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]

        if since:
            conditions.append("logged_at >= ?")
            params.append(since)
        if until:
            conditions.append("logged_at <= ?")
            params.append(until)

        where = " AND ".join(conditions)
        query = (
            f"SELECT * FROM biometric_logs WHERE {where} "
            "ORDER BY logged_at DESC, created_at DESC LIMIT ?"
        )
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_log(row) for row in rows]

    def get_latest_log(self, user_id: str) -> StoredBiometricLog | None:
        """Get a user's most recent log."""
        results = self.get_logs(user_id, limit=1)
        return results[0] if results else None

    def count_logs(self, user_id: str | None = None) -> int:
        """Return the number of stored logs, for one user or overall."""
        conn = self._db.connection
        if user_id is None:
            row = conn.execute("SELECT COUNT(*) FROM biometric_logs").fetchone()
        else:
            row = conn.execute(
                "SELECT COUNT(*) FROM biometric_logs WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Deletion / data retention
    # ------------------------------------------------------------------

    def delete_log(self, log_id: str, *, user_id: str | None = None) -> bool:
        """Delete a single log.

        Returns:
            True if a log was found and deleted, False otherwise.
        """
        query = "DELETE FROM biometric_logs WHERE id = ?"
        params: list[Any] = [log_id]
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        conn = self._db.connection
        cursor = conn.execute(query, params)
        conn.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted biometric log %s", log_id)
        return deleted

    def delete_user_logs(self, user_id: str) -> int:
        """Delete every log owned by ``user_id``.

        Returns:
            Number of logs deleted.
        """
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM biometric_logs WHERE user_id = ?", (user_id,))
        conn.commit()
        logger.warning(
            "Deleted all biometric logs for user %s: %d removed",
            fingerprint(user_id), cursor.rowcount,
        )
        return cursor.rowcount

    def purge_before(self, before_timestamp: str) -> int:
        """Delete all logs measured before ``before_timestamp`` (ISO 8601).

        Returns:
            Number of logs deleted.
        """
        conn = self._db.connection
        cursor = conn.execute(
            "DELETE FROM biometric_logs WHERE logged_at < ?", (before_timestamp,)
        )
        conn.commit()
        if cursor.rowcount:
            logger.info("Purged %d biometric logs older than %s", cursor.rowcount, before_timestamp)
        return cursor.rowcount

    def purge_before_days(self, days: int) -> int:
        """Delete all logs older than N days. Wrapper around :meth:`purge_before`."""
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        return self.purge_before(cutoff)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_log(row: Any) -> StoredBiometricLog:
        """Convert a database row to a StoredBiometricLog (tokens untouched)."""
        return StoredBiometricLog(
            id=row["id"],
            user_id=row["user_id"],
            logged_at=row["logged_at"],
            encrypted=EncryptedBiometricLog(
                **{name: row[column] for name, column in _COLUMNS.items()}
            ),
            created_at=row["created_at"],
        )
