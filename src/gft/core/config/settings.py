"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """GFT biometric vault configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback; the MCP surface has no auth layer of its own.
    gft_host: str = "127.0.0.1"
    gft_port: int = 8001
    gft_log_level: str = "info"
    gft_allow_insecure_bind: bool = False

    # Storage (biometric logs + audit trail)
    db_path: str = "~/.gft/biometrics.db"

    # Key derivation. Changing either value makes every stored token
    # undecryptable; they must match the scheme that wrote the data.
    biometric_salt_prefix: str = "gft-biometric-v1-"
    biometric_kdf_iterations: int = 100_000

    # Challenge check-ins
    checkin_interval_days: int = 14


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
