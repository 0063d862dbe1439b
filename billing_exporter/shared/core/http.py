"""
Async HTTP client construction for the upstream billing API.

One httpx.AsyncClient is shared by every task of every pass so the
connection pool, not the fan-out, bounds open sockets.
"""

from typing import Optional

import httpx
import structlog

from billing_exporter.shared.core.config import Settings

logger = structlog.get_logger()

# Singleton instance
_client: Optional[httpx.AsyncClient] = None


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    """Builds an httpx.AsyncClient from exporter settings."""
    auth: Optional[httpx.Auth] = None
    if settings.has_credentials:
        auth = httpx.DigestAuth(
            str(settings.API_USERNAME), str(settings.API_KEY)
        )

    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            settings.REQUEST_TIMEOUT_SECONDS, connect=settings.CONNECT_TIMEOUT_SECONDS
        ),
        limits=httpx.Limits(
            max_connections=settings.COLLECTION_CONCURRENCY * 2,
            max_keepalive_connections=settings.COLLECTION_CONCURRENCY,
        ),
        verify=settings.VERIFY_TLS,
        auth=auth,
        headers={
            "Accept": "application/json",
            "User-Agent": f"{settings.APP_NAME}/{settings.VERSION}",
        },
    )


def get_http_client(settings: Settings) -> httpx.AsyncClient:
    """
    Returns the process-wide httpx.AsyncClient, creating it on first use.
    """
    global _client
    if _client is None or _client.is_closed:
        _client = build_http_client(settings)
        logger.info(
            "http_client_initialized",
            verify=settings.VERIFY_TLS,
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            digest_auth=settings.has_credentials,
        )
    return _client


async def close_http_client() -> None:
    """Gracefully shuts down the shared client, flushing its pool."""
    global _client
    if _client is None:
        return
    await _client.aclose()
    _client = None
    logger.info("http_client_closed")
