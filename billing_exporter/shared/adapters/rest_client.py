from __future__ import annotations

import time

import httpx
import structlog

from billing_exporter.shared.core.exceptions import (
    FetchError,
    ForbiddenError,
    NotFoundError,
    TransportError,
    UnauthorizedError,
    UnknownStatusError,
)
from billing_exporter.shared.core.ops_metrics import (
    UPSTREAM_REQUEST_DURATION,
    UPSTREAM_REQUESTS_TOTAL,
)

logger = structlog.get_logger()

_STATUS_ERRORS: dict[int, type[FetchError]] = {
    404: NotFoundError,
    403: ForbiddenError,
    401: UnauthorizedError,
}


class RestClient:
    """
    Single-attempt GET client for the upstream REST API.

    Paths are appended to the base URL verbatim. Non-200 statuses and any
    httpx request failure are raised as FetchError subclasses; the caller decides
    whether an error is pass-fatal or entity-local.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self._client = client
        self._base_url = base_url.rstrip("/")

    @property
    def base_url(self) -> str:
        return self._base_url

    def url_for(self, path: str) -> str:
        if not path or not path.strip("/"):
            raise ValueError("path must not be empty")
        return f"{self._base_url}/{path.lstrip('/')}"

    async def get(self, path: str) -> bytes:
        url = self.url_for(path)
        logger.debug("rest_client_request", path=path)

        start = time.perf_counter()
        try:
            response = await self._client.get(url)
        except httpx.RequestError as exc:
            # Connection, timeout and body decoding failures alike
            UPSTREAM_REQUESTS_TOTAL.labels(outcome="transport_error").inc()
            logger.error("rest_client_transport_error", path=path, error=str(exc))
            raise TransportError(path, exc) from exc
        finally:
            UPSTREAM_REQUEST_DURATION.observe(time.perf_counter() - start)

        status = response.status_code
        if status == 200:
            UPSTREAM_REQUESTS_TOTAL.labels(outcome="ok").inc()
            return response.content

        error_cls = _STATUS_ERRORS.get(status)
        if error_cls is not None:
            error: FetchError = error_cls(path)
            logger.warning("rest_client_request_rejected", path=path, status=status)
        else:
            error = UnknownStatusError(path, status)
            logger.error("rest_client_unexpected_status", path=path, status=status)
        UPSTREAM_REQUESTS_TOTAL.labels(outcome=error.code).inc()
        raise error
