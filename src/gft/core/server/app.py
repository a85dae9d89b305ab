"""GFT Biometric Vault MCP server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from gft.core.audit.logger import AuditLogger
from gft.core.config.settings import get_settings
from gft.core.crypto.field_cipher import FieldCipher
from gft.core.crypto.provider import CryptoProvider
from gft.core.crypto.record_cipher import RecordCipher
from gft.core.storage.database import BiometricDatabase
from gft.core.storage.repository import BiometricRepository
from gft.domains.fitness.domain_logic.biometric_journal import BiometricJournal
from gft.domains.fitness.tools.biometric_tools import register_biometric_tools

logger = logging.getLogger(__name__)

SERVER_VERSION = "0.1.0"


def create_app(
    *,
    database_override: BiometricDatabase | None = None,
    crypto_provider_override: CryptoProvider | None = None,
) -> FastMCP:
    """Create and configure the biometric vault MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Opens the biometric database (logs + audit trail)
    3. Builds the field and record ciphers around the crypto provider
    4. Registers all tools
    """
    settings = get_settings()

    # --- Server instance ---
    server = FastMCP(
        "GFT Biometric Vault",
        instructions=(
            "Encrypted biometric check-ins for fitness-challenge participants. "
            "Weight, body-fat, muscle-mass and height are encrypted per field "
            "before storage and decrypted per field on read."
        ),
    )

    # --- Storage ---
    if database_override is not None:
        database = database_override
    else:
        database = BiometricDatabase(settings.db_path)
    database.initialize()
    logger.info(
        "Biometric database ready: %s (schema v%d)",
        settings.db_path if database_override is None else "override",
        database.get_schema_version(),
    )
    repository = BiometricRepository(database)
    audit_logger = AuditLogger(database)

    # --- Ciphers ---
    provider = crypto_provider_override or CryptoProvider()
    field_cipher = FieldCipher(
        provider,
        salt_prefix=settings.biometric_salt_prefix,
        iterations=settings.biometric_kdf_iterations,
    )
    journal = BiometricJournal(
        RecordCipher(field_cipher),
        repository,
        checkin_interval_days=settings.checkin_interval_days,
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "GFT Biometric Vault",
            "version": SERVER_VERSION,
            "schema_version": database.get_schema_version(),
            "biometric_logs_stored": repository.count_logs(),
        }

    register_biometric_tools(server, journal, repository, audit_logger)
    logger.info("Biometric journal tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
