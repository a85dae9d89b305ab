"""MCP tools for encrypted biometric check-ins.

Measurements are encrypted per field before they are stored and decrypted
per field on read. A field that cannot be decrypted is reported as
unavailable instead of hiding the rest of the entry. Every access is
audit-logged without the measurements themselves.
"""

from __future__ import annotations

import json
import logging
import time
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

from gft.core.crypto.errors import BiometricCryptoError, MissingIdentifierError
from gft.core.crypto.models import BIOMETRIC_FIELDS, BiometricLog, FieldResult
from gft.domains.fitness.domain_logic.biometric_journal import JournalError

if TYPE_CHECKING:
    from gft.core.audit.logger import AuditLogger
    from gft.core.storage.repository import BiometricRepository
    from gft.domains.fitness.domain_logic.biometric_journal import BiometricJournal

logger = logging.getLogger(__name__)


def _field_payload(result: FieldResult) -> Any:
    if result.ok:
        return result.value
    return {"status": "unavailable", "error": type(result.error).__name__}


def register_biometric_tools(
    mcp: FastMCP,
    journal: BiometricJournal,
    repository: BiometricRepository,
    audit_logger: AuditLogger | None = None,
) -> None:
    """Register biometric journal tools on the MCP server."""

    def _audit(action: str, **kwargs: Any) -> None:
        if audit_logger is not None:
            audit_logger.log_biometric_access(action, **kwargs)

    @mcp.tool
    async def log_biometrics(
        ctx: Context,
        user_id: str,
        weight_kg: float | None = None,
        body_fat_percentage: float | None = None,
        muscle_mass_percentage: float | None = None,
        height_cm: float | None = None,
        logged_at: str = "",
    ) -> str:
        """Record a biometric check-in. Each measurement is encrypted before it is stored.

        Args:
            user_id: Account identifier of the participant.
            weight_kg: Body weight in kilograms.
            body_fat_percentage: Body-fat percentage.
            muscle_mass_percentage: Muscle-mass percentage.
            height_cm: Height in centimeters.
            logged_at: Time of measurement (ISO 8601). Defaults to now.
        """
        start_time = time.monotonic()
        log = BiometricLog(
            weight=weight_kg,
            body_fat=body_fat_percentage,
            muscle_mass=muscle_mass_percentage,
            height=height_cm,
        )
        present = [name for name, value in log.as_dict().items() if value is not None]

        try:
            log_id = await journal.record(user_id, log, logged_at=logged_at or None)
        except (BiometricCryptoError, JournalError) as exc:
            elapsed_ms = (time.monotonic() - start_time) * 1000
            if not isinstance(exc, MissingIdentifierError):
                _audit(
                    "biometric_write",
                    user_id=user_id,
                    tool_name="log_biometrics",
                    fields_present=present,
                    duration_ms=elapsed_ms,
                    error_type=type(exc).__name__,
                )
            logger.warning("Biometric check-in rejected: %s", type(exc).__name__)
            return json.dumps({"status": "error", "error": type(exc).__name__, "message": str(exc)})

        elapsed_ms = (time.monotonic() - start_time) * 1000
        _audit(
            "biometric_write",
            user_id=user_id,
            tool_name="log_biometrics",
            log_id=log_id,
            fields_present=present,
            duration_ms=elapsed_ms,
        )
        return json.dumps({
            "status": "saved",
            "log_id": log_id,
            "recorded_fields": present,
            "duration_ms": round(elapsed_ms, 1),
        })

    @mcp.tool
    async def get_biometric_history(
        ctx: Context,
        user_id: str,
        limit: int = 20,
    ) -> str:
        """Show a participant's biometric check-ins, newest first.

        Args:
            user_id: Account identifier of the participant.
            limit: Maximum number of check-ins to return.
        """
        start_time = time.monotonic()
        try:
            entries = await journal.history(user_id, limit=limit)
        except MissingIdentifierError as exc:
            return json.dumps({"status": "error", "error": type(exc).__name__, "message": str(exc)})

        failed: set[str] = set()
        present: set[str] = set()
        payload = []
        for entry in entries:
            results = entry.record.results()
            for name, result in results.items():
                if result.value is not None or not result.ok:
                    present.add(name)
            failed.update(entry.record.failed_fields)
            payload.append({
                "log_id": entry.id,
                "logged_at": entry.logged_at,
                **{name: _field_payload(results[name]) for name in BIOMETRIC_FIELDS},
                "bmi": round(entry.bmi, 1) if entry.bmi is not None else None,
                "weight_change": (
                    round(entry.weight_change, 2) if entry.weight_change is not None else None
                ),
            })

        elapsed_ms = (time.monotonic() - start_time) * 1000
        _audit(
            "biometric_read",
            user_id=user_id,
            tool_name="get_biometric_history",
            fields_present=sorted(present),
            fields_failed=sorted(failed),
            duration_ms=elapsed_ms,
            metadata={"entries": len(entries)},
        )
        return json.dumps({"status": "ok", "count": len(payload), "entries": payload})

    @mcp.tool
    async def get_checkin_status(
        ctx: Context,
        user_id: str,
        challenge_day: int = 0,
    ) -> str:
        """Check whether a participant is due for a new biometric check-in.

        Args:
            user_id: Account identifier of the participant.
            challenge_day: Current day of the challenge (0-based).
        """
        try:
            status = journal.checkin_status(user_id, challenge_day=challenge_day)
        except MissingIdentifierError as exc:
            return json.dumps({"status": "error", "error": type(exc).__name__, "message": str(exc)})
        return json.dumps({
            "status": "ok",
            "due": status.due,
            "checkpoint": status.checkpoint,
            "last_logged_at": status.last_logged_at,
            "days_since_last_log": status.days_since_last_log,
        })

    @mcp.tool
    async def delete_biometric_log(
        ctx: Context,
        user_id: str,
        log_id: str,
    ) -> str:
        """Permanently delete one of a participant's biometric check-ins.

        Args:
            user_id: Account identifier of the participant.
            log_id: The ID of the check-in to delete.
        """
        deleted = repository.delete_log(log_id, user_id=user_id)
        if not deleted:
            return json.dumps({
                "status": "not_found",
                "log_id": log_id,
                "message": "No check-in found with that ID for this participant.",
            })

        _audit("biometric_delete", user_id=user_id, tool_name="delete_biometric_log", log_id=log_id)
        return json.dumps({"status": "deleted", "log_id": log_id})
