import asyncio
import json
from collections.abc import Sequence
from typing import Any, Optional, Union

from billing_exporter.modules.collection.domain.mapper import MetricEmission

Response = Union[bytes, dict, list, Exception]

TEST_BASE_URL = "https://billing.example.test/api/v1"


def payload(data: Any) -> bytes:
    """JSON-encode a response body the way the upstream API returns it."""
    return json.dumps(data).encode()


class FakeFetcher:
    """
    In-memory stand-in for RestClient.

    Routes map a path (query string included) to a JSON-able payload, raw
    bytes or an exception instance to raise. A key ending in "*" matches any
    path with that prefix. Unrouted paths raise KeyError.
    """

    def __init__(
        self, routes: Optional[dict[str, Response]] = None, delay: float = 0.0
    ):
        self.routes: dict[str, Response] = dict(routes or {})
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.peak_active = 0

    def _resolve(self, path: str) -> Response:
        if path in self.routes:
            return self.routes[path]
        for prefix, response in self.routes.items():
            if prefix.endswith("*") and path.startswith(prefix[:-1]):
                return response
        raise KeyError(path)

    async def get(self, path: str) -> bytes:
        self.calls.append(path)
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self._resolve(path)
        finally:
            self.active -= 1
        if isinstance(response, Exception):
            raise response
        if isinstance(response, bytes):
            return response
        return payload(response)


class RecordingSink:
    """Metric sink that keeps every emission and the last value per series."""

    def __init__(self) -> None:
        self.emissions: list[MetricEmission] = []
        self.values: dict[tuple[str, frozenset[tuple[str, str]]], float] = {}

    def emit_gauge(
        self, name: str, value: float, labels: Sequence[tuple[str, str]]
    ) -> None:
        self.emissions.append(
            MetricEmission(name=name, value=value, labels=tuple(labels))
        )
        self.values[(name, frozenset(labels))] = value

    def value(self, name: str, /, **labels: str) -> Optional[float]:
        return self.values.get((name, frozenset(labels.items())))

    def names(self) -> set[str]:
        return {emission.name for emission in self.emissions}

    def series(self, name: str) -> list[dict[str, str]]:
        return [dict(labels) for (metric, labels) in self.values if metric == name]
