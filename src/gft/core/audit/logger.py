"""Audit logger — PHI-free trail of biometric writes, reads and deletions.

Every access to encrypted biometric data is recorded without the data
itself:

* ``user_hash``      — SHA-256 of the user id (no raw identifier stored).
* ``fields_present`` — which of the four measurements were involved.
* ``fields_failed``  — which fields could not be encrypted or decrypted.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from gft.core.storage.database import BiometricDatabase

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Identifier hashing
# ---------------------------------------------------------------------------

def _hash_user(user_id: str) -> str:
    """SHA-256 hex digest of a user id, or empty string when there is none."""
    if not user_id:
        return ""
    return hashlib.sha256(user_id.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# AuditEvent dataclass
# ---------------------------------------------------------------------------

@dataclass
class AuditEvent:
    """A single audit log entry."""

    action: str                          # 'biometric_write' | 'biometric_read' | 'biometric_delete'
    tool_name: str = ""
    user_hash: str = ""
    log_id: str | None = None
    fields_present: list[str] = field(default_factory=list)
    fields_failed: list[str] = field(default_factory=list)
    duration_ms: float | None = None
    status: str = "success"              # 'success' | 'partial' | 'failure'
    error_type: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# AuditLogger
# ---------------------------------------------------------------------------

class AuditLogger:
    """Records audit events to the ``audit_log`` SQLite table.

    All writes are committed immediately so no audit entry is lost on crash.

    Usage::

        audit = AuditLogger(db)
        event_id = audit.log_biometric_access(
            "biometric_read",
            user_id="user-123",
            tool_name="get_biometric_history",
            fields_present=["weight", "height"],
        )
    """

    def __init__(self, database: BiometricDatabase) -> None:
        self._db = database

    # ---------------------------------------------------------------
    # Write
    # ---------------------------------------------------------------

    def log_event(self, event: AuditEvent) -> str:
        """Insert an audit event and return its UUID.

        Returns:
            The generated event ID, or empty string if the write failed.
        """
        event_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()

        metadata_json = (
            json.dumps(event.metadata, separators=(",", ":"))
            if event.metadata
            else None
        )

        try:
            conn = self._db.connection
            conn.execute(
                """INSERT INTO audit_log
                   (id, timestamp, action, tool_name, user_hash, log_id,
                    fields_present, fields_failed, duration_ms, status,
                    error_type, metadata_json)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    event_id,
                    now,
                    event.action,
                    event.tool_name or None,
                    event.user_hash or None,
                    event.log_id,
                    ",".join(event.fields_present) or None,
                    ",".join(event.fields_failed) or None,
                    event.duration_ms,
                    event.status,
                    event.error_type,
                    metadata_json,
                ),
            )
            conn.commit()
        except Exception:
            logger.exception("Failed to write audit event — event lost")
            return ""

        return event_id

    def log_biometric_access(
        self,
        action: str,
        *,
        user_id: str,
        tool_name: str = "",
        log_id: str | None = None,
        fields_present: list[str] | None = None,
        fields_failed: list[str] | None = None,
        duration_ms: float | None = None,
        error_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Convenience wrapper for a biometric write, read or delete.

        Status is derived from the failures: ``success`` with none,
        ``partial`` when some present fields failed, ``failure`` when all
        did or when ``error_type`` is given.

        Args:
            action: 'biometric_write', 'biometric_read' or 'biometric_delete'.
            user_id: Owner of the data (hashed, never stored raw).
            tool_name: Tool or caller that performed the access.
            log_id: ID of the affected log, if any.
            fields_present: Fields that carried a value or token.
            fields_failed: Fields that failed to encrypt or decrypt.
            duration_ms: Operation duration in milliseconds.
            error_type: Exception class name when the whole call failed.
            metadata: Additional non-PHI metadata.

        Returns:
            The generated event ID.
        """
        present = list(fields_present or [])
        failed = list(fields_failed or [])
        if error_type or (failed and len(failed) >= len(present)):
            status = "failure"
        elif failed:
            status = "partial"
        else:
            status = "success"

        return self.log_event(AuditEvent(
            action=action,
            tool_name=tool_name,
            user_hash=_hash_user(user_id),
            log_id=log_id,
            fields_present=present,
            fields_failed=failed,
            duration_ms=duration_ms,
            status=status,
            error_type=error_type,
            metadata=metadata or {},
        ))

    # ---------------------------------------------------------------
    # Read
    # ---------------------------------------------------------------

    def get_events(
        self,
        *,
        action: str | None = None,
        user_id: str | None = None,
        since: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Query audit events with optional filters.

        Args:
            action: Filter by action type.
            user_id: Filter by user (matched through its hash).
            since: ISO 8601 timestamp lower bound.
            limit: Maximum events to return.

        Returns:
            List of event dicts, newest first.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if action:
            conditions.append("action = ?")
            params.append(action)
        if user_id:
            conditions.append("user_hash = ?")
            params.append(_hash_user(user_id))
        if since:
            conditions.append("timestamp >= ?")
            params.append(since)

        where = (" WHERE " + " AND ".join(conditions)) if conditions else ""
        query = f"SELECT * FROM audit_log{where} ORDER BY timestamp DESC LIMIT ?"
        params.append(limit)

        rows = self._db.connection.execute(query, params).fetchall()
        return [dict(row) for row in rows]

    def count_events(self, *, since: str | None = None) -> int:
        """Count total audit events, optionally since a timestamp."""
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE timestamp >= ?", (since,)
            ).fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log"
            ).fetchone()
        return row[0]

    def count_failures(self, *, since: str | None = None) -> int:
        """Count events where at least one field could not be processed.

        This answers: "How often has stored biometric data been unreadable?"
        """
        if since:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE status != 'success' AND timestamp >= ?",
                (since,),
            ).fetchone()
        else:
            row = self._db.connection.execute(
                "SELECT COUNT(*) FROM audit_log WHERE status != 'success'"
            ).fetchone()
        return row[0]
