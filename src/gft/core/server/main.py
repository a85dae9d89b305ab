"""GFT server entry point — ``python -m gft.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from gft.core.config.settings import get_settings
from gft.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the biometric vault MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.gft_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.gft_allow_insecure_bind and not _is_loopback_host(settings.gft_host):
        raise RuntimeError(
            "Refusing to bind GFT server to a non-loopback host without an auth layer. "
            "Set GFT_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting GFT Biometric Vault server on %s:%d",
        settings.gft_host,
        settings.gft_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.gft_host,
        port=settings.gft_port,
    )


if __name__ == "__main__":
    run()
