"""
Exporter entrypoint.

Serves the Prometheus endpoint and runs a collection pass every
COLLECTION_INTERVAL_SECONDS until SIGINT/SIGTERM. With --once, runs a single
pass and exits 1 if it was aborted, 3 if any step inside it failed.
"""

import argparse
import asyncio
import signal
from typing import Any, Optional

import structlog
from prometheus_client import start_http_server
from pydantic import ValidationError

from billing_exporter.modules.collection.domain.collector import CollectionScheduler
from billing_exporter.modules.collection.domain.sink import PrometheusMetricSink
from billing_exporter.services.scheduler import CollectionTrigger
from billing_exporter.shared.adapters.rest_client import RestClient
from billing_exporter.shared.core.config import Settings, get_settings
from billing_exporter.shared.core.exceptions import CollectionPassError
from billing_exporter.shared.core.http import close_http_client, get_http_client
from billing_exporter.shared.core.logging import setup_logging

logger = structlog.get_logger()


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Poll the billing API and expose the results as Prometheus gauges."
    )
    parser.add_argument(
        "--url", help="Base URL of the upstream API (overrides BASE_URL)."
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Per-request timeout in seconds (overrides REQUEST_TIMEOUT_SECONDS).",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single collection pass and exit.",
    )
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    if args.url:
        overrides["BASE_URL"] = args.url
    if args.timeout is not None:
        overrides["REQUEST_TIMEOUT_SECONDS"] = args.timeout
    if overrides:
        return Settings(**overrides)
    return get_settings()


def build_collector(settings: Settings) -> CollectionScheduler:
    client = RestClient(get_http_client(settings), settings.BASE_URL)
    sink = PrometheusMetricSink(namespace=settings.METRICS_NAMESPACE)
    return CollectionScheduler.from_settings(client, sink, settings)


async def run_once(settings: Settings) -> int:
    collector = build_collector(settings)
    try:
        report = await collector.run_collection_pass()
    except CollectionPassError as exc:
        logger.error(
            "collection_pass_failed", error_code=exc.cause.code, error=exc.message
        )
        return 1
    finally:
        await close_http_client()
    return 0 if report.fully_succeeded else 3


async def serve(settings: Settings) -> int:
    start_http_server(settings.METRICS_PORT, addr=settings.METRICS_ADDR)
    logger.info(
        "metrics_endpoint_started",
        addr=settings.METRICS_ADDR,
        port=settings.METRICS_PORT,
    )

    trigger = CollectionTrigger(
        build_collector(settings), settings.COLLECTION_INTERVAL_SECONDS
    )
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    trigger.start()
    try:
        await stop.wait()
    finally:
        logger.info("exporter_shutting_down", **trigger.get_status())
        trigger.stop()
        await close_http_client()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        settings = build_settings(args)
    except ValidationError as exc:
        logger.error("invalid_configuration", errors=exc.errors(include_url=False))
        return 2

    setup_logging(settings)
    logger.info(
        "exporter_starting", version=settings.VERSION, base_url=settings.BASE_URL
    )
    if args.once:
        return asyncio.run(run_once(settings))
    return asyncio.run(serve(settings))


if __name__ == "__main__":
    raise SystemExit(main())
