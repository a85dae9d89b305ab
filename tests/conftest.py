"""Shared test fixtures for GFT biometric vault tests."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from gft.core.crypto.field_cipher import FieldCipher  # noqa: E402
from gft.core.crypto.provider import CryptoProvider  # noqa: E402
from gft.core.crypto.record_cipher import RecordCipher  # noqa: E402

# Low iteration count for fixtures that exercise behavior, not the KDF cost.
FAST_ITERATIONS = 1_000


# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DB_PATH", str(tmp_path / "biometrics.db"))
    monkeypatch.setenv("BIOMETRIC_KDF_ITERATIONS", str(FAST_ITERATIONS))
    monkeypatch.delenv("BIOMETRIC_SALT_PREFIX", raising=False)


# ---------------------------------------------------------------------------
# Crypto fixtures
# ---------------------------------------------------------------------------

class FailingCryptoProvider(CryptoProvider):
    """Provider whose AES-GCM encryption always fails."""

    def aes_gcm(self, key: bytes):
        aead = super().aes_gcm(key)

        class _Broken:
            def encrypt(self, nonce, data, associated_data):
                raise RuntimeError("hardware fault")

            def decrypt(self, nonce, data, associated_data):
                return aead.decrypt(nonce, data, associated_data)

        return _Broken()


class CountingCryptoProvider(CryptoProvider):
    """Provider that counts key derivations and random draws."""

    def __init__(self) -> None:
        self.derivations = 0
        self.random_draws = 0

    def pbkdf2_sha256(self, key_material, salt, iterations, length=32):
        self.derivations += 1
        return super().pbkdf2_sha256(key_material, salt, iterations, length)

    def random_bytes(self, n):
        self.random_draws += 1
        return super().random_bytes(n)


@pytest.fixture
def crypto_provider() -> CryptoProvider:
    return CryptoProvider()


@pytest.fixture
def field_cipher(crypto_provider: CryptoProvider) -> FieldCipher:
    """FieldCipher with the production salt prefix and a fast KDF."""
    return FieldCipher(crypto_provider, iterations=FAST_ITERATIONS)


@pytest.fixture
def record_cipher(field_cipher: FieldCipher) -> RecordCipher:
    return RecordCipher(field_cipher)


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def biometric_db():
    """Create an in-memory BiometricDatabase for testing."""
    from gft.core.storage.database import BiometricDatabase

    db = BiometricDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def biometric_repository(biometric_db):
    """Create a BiometricRepository backed by in-memory SQLite."""
    from gft.core.storage.repository import BiometricRepository

    return BiometricRepository(biometric_db)


@pytest.fixture
def audit_logger(biometric_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from gft.core.audit.logger import AuditLogger

    return AuditLogger(biometric_db)


@pytest.fixture
def journal(record_cipher, biometric_repository):
    """Create a BiometricJournal over in-memory storage."""
    from gft.domains.fitness.domain_logic.biometric_journal import BiometricJournal

    return BiometricJournal(record_cipher, biometric_repository)
