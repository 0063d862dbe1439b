"""
Collection Pass Engine

Runs one collection pass against the upstream API:

1. Fetch the group listing. Any failure here aborts the pass before a single
   metric is emitted.
2. Spawn one sub-collection task per group (and one per account-level billing
   step). Each task holds a slot of a counting admission gate for its whole
   duration, so at most `concurrency` tasks talk to the upstream API at once.
3. Wait for every task. Step failures inside a task are logged, counted and
   reported but never abort sibling steps or other tasks.

Within one group the steps run in a fixed order: database users, cluster
listing, then the change status of each listed cluster. Status lookups are
skipped when the cluster listing fails.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import partial
from typing import Optional, Protocol, TypeVar

import structlog

from billing_exporter.modules.collection.domain import decoder, endpoints
from billing_exporter.modules.collection.domain.mapper import (
    MetricEmission,
    map_change_status,
    map_chart_series,
    map_deployment_costs,
    map_user_listing,
)
from billing_exporter.modules.collection.domain.schemas import (
    ClusterListing,
    Group,
    GroupListing,
)
from billing_exporter.modules.collection.domain.sink import MetricSink, emit_all
from billing_exporter.shared.core.config import Settings
from billing_exporter.shared.core.exceptions import (
    CollectionInProgressError,
    CollectionPassError,
    ExporterException,
)
from billing_exporter.shared.core.ops_metrics import (
    COLLECTION_ENTITIES,
    COLLECTION_LAST_SUCCESS,
    COLLECTION_PASS_DURATION,
    COLLECTION_PASSES_TOTAL,
    INFLIGHT_ENTITY_TASKS,
    STEP_FAILURES_TOTAL,
)

logger = structlog.get_logger()
T = TypeVar("T")

DEFAULT_CONCURRENCY = 8
DEFAULT_ITEMS_PER_PAGE = 500
ACCOUNT_ENTITY_ID = "account"


class RawFetcher(Protocol):
    async def get(self, path: str) -> bytes: ...


class CollectorState(Enum):
    """Collection pass states."""

    IDLE = "idle"
    FETCHING_TOP_LEVEL = "fetching_top_level"
    FANNING_OUT = "fanning_out"
    DRAINING = "draining"


class Step(str, Enum):
    GROUPS = "groups"
    USERS = "users"
    CLUSTERS = "clusters"
    CLUSTER_STATUS = "cluster_status"
    HOURLY_RATE = "hourly_rate"
    DEPLOYMENT_COSTS = "deployment_costs"


@dataclass(frozen=True)
class StepFailure:
    entity_id: str
    step: str
    error_code: str
    message: str


@dataclass
class PassReport:
    """Summary of a completed (possibly partially failed) collection pass."""

    pass_id: str
    entities: int = 0
    emissions: int = 0
    failures: list[StepFailure] = field(default_factory=list)
    peak_in_flight: int = 0
    duration_seconds: float = 0.0

    @property
    def fully_succeeded(self) -> bool:
        return not self.failures


class CollectionScheduler:
    """Drives collection passes; one pass at a time."""

    def __init__(
        self,
        client: RawFetcher,
        sink: MetricSink,
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
        items_per_page: int = DEFAULT_ITEMS_PER_PAGE,
        collect_billing: bool = True,
        chart_api_version: str = "v1",
        chart_window: timedelta = timedelta(hours=1),
        chart_bounded_window: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.client = client
        self.sink = sink
        self.concurrency = concurrency
        self.items_per_page = items_per_page
        self.collect_billing = collect_billing
        self.chart_api_version = chart_api_version
        self.chart_window = chart_window
        self.chart_bounded_window = chart_bounded_window
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._state = CollectorState.IDLE
        self._pass_lock = asyncio.Lock()
        self._in_flight = 0

    @classmethod
    def from_settings(
        cls, client: RawFetcher, sink: MetricSink, settings: Settings
    ) -> "CollectionScheduler":
        return cls(
            client,
            sink,
            concurrency=settings.COLLECTION_CONCURRENCY,
            items_per_page=settings.ITEMS_PER_PAGE,
            collect_billing=settings.COLLECT_BILLING,
            chart_api_version=settings.CHART_API_VERSION,
            chart_window=timedelta(hours=settings.CHART_WINDOW_HOURS),
            chart_bounded_window=settings.CHART_BOUNDED_WINDOW,
        )

    @property
    def state(self) -> CollectorState:
        return self._state

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def run_collection_pass(self) -> PassReport:
        """
        Runs one full pass and returns its report.

        Raises CollectionPassError when the group listing cannot be fetched or
        decoded, and CollectionInProgressError when a pass is already running.
        """
        if self._pass_lock.locked():
            raise CollectionInProgressError()

        async with self._pass_lock:
            report = PassReport(pass_id=uuid.uuid4().hex[:12])
            structlog.contextvars.bind_contextvars(pass_id=report.pass_id)
            start = time.perf_counter()
            try:
                self._state = CollectorState.FETCHING_TOP_LEVEL
                groups = await self._fetch_groups()

                self._state = CollectorState.FANNING_OUT
                report.entities = len(groups)
                gate = asyncio.Semaphore(self.concurrency)
                tasks: list[asyncio.Task[None]] = [
                    asyncio.create_task(self._collect_group(gate, group, report))
                    for group in groups
                ]
                if self.collect_billing:
                    tasks.append(
                        asyncio.create_task(self._collect_account(gate, report))
                    )

                self._state = CollectorState.DRAINING
                results = await asyncio.gather(*tasks, return_exceptions=True)
                self._record_crashed_tasks(results, groups, report)
            finally:
                report.duration_seconds = time.perf_counter() - start
                self._state = CollectorState.IDLE
                structlog.contextvars.unbind_contextvars("pass_id")

        COLLECTION_PASSES_TOTAL.labels(status="success").inc()
        COLLECTION_PASS_DURATION.observe(report.duration_seconds)
        COLLECTION_LAST_SUCCESS.set_to_current_time()
        COLLECTION_ENTITIES.set(report.entities)
        logger.info(
            "collection_pass_completed",
            pass_id=report.pass_id,
            entities=report.entities,
            emissions=report.emissions,
            failures=len(report.failures),
            peak_in_flight=report.peak_in_flight,
            duration_seconds=round(report.duration_seconds, 3),
        )
        return report

    async def _fetch_groups(self) -> list[Group]:
        try:
            body = await self.client.get(endpoints.groups_path(self.items_per_page))
            listing: GroupListing = decoder.decode_group_listing(body)
        except ExporterException as exc:
            COLLECTION_PASSES_TOTAL.labels(status="failed").inc()
            logger.error(
                "collection_pass_aborted",
                step=Step.GROUPS.value,
                error_code=exc.code,
                error=exc.message,
            )
            raise CollectionPassError(
                f"Group listing failed: {exc.message}", cause=exc
            ) from exc

        unique: dict[str, Group] = {}
        for group in listing.results:
            if group.id in unique:
                logger.warning("duplicate_group_ignored", group_id=group.id)
                continue
            unique[group.id] = group
        return list(unique.values())

    # --- Admission gate ---
    async def _gated(
        self,
        gate: asyncio.Semaphore,
        report: PassReport,
        work: Callable[[], Awaitable[None]],
    ) -> None:
        async with gate:
            self._in_flight += 1
            report.peak_in_flight = max(report.peak_in_flight, self._in_flight)
            INFLIGHT_ENTITY_TASKS.inc()
            try:
                await work()
            finally:
                self._in_flight -= 1
                INFLIGHT_ENTITY_TASKS.dec()

    async def _run_step(
        self,
        report: PassReport,
        entity_id: str,
        step: Step,
        action: Callable[[], Awaitable[T]],
        **log_context: str,
    ) -> Optional[T]:
        """Runs one step, converting an exporter error into a recorded failure."""
        try:
            return await action()
        except ExporterException as exc:
            report.failures.append(
                StepFailure(
                    entity_id=entity_id,
                    step=step.value,
                    error_code=exc.code,
                    message=exc.message,
                )
            )
            STEP_FAILURES_TOTAL.labels(step=step.value, error=exc.code).inc()
            logger.warning(
                "collection_step_failed",
                entity_id=entity_id,
                step=step.value,
                error_code=exc.code,
                error=exc.message,
                **log_context,
            )
            return None

    def _emit(self, report: PassReport, emissions: list[MetricEmission]) -> int:
        emitted = emit_all(self.sink, emissions)
        report.emissions += emitted
        return emitted

    # --- Per-group sub-collection ---
    async def _collect_group(
        self, gate: asyncio.Semaphore, group: Group, report: PassReport
    ) -> None:
        async def work() -> None:
            await self._run_step(
                report,
                group.id,
                Step.USERS,
                lambda: self._collect_users(group, report),
                entity_name=group.name,
            )
            clusters = await self._run_step(
                report,
                group.id,
                Step.CLUSTERS,
                lambda: self._fetch_clusters(group),
                entity_name=group.name,
            )
            if clusters is None:
                return
            for cluster in clusters.results:
                await self._run_step(
                    report,
                    group.id,
                    Step.CLUSTER_STATUS,
                    partial(self._collect_cluster_status, group, cluster.name, report),
                    entity_name=group.name,
                    cluster=cluster.name,
                )

        await self._gated(gate, report, work)

    async def _collect_users(self, group: Group, report: PassReport) -> int:
        body = await self.client.get(
            endpoints.database_users_path(group.id, self.items_per_page)
        )
        users = decoder.decode_user_listing(body)
        return self._emit(report, map_user_listing(group, users))

    async def _fetch_clusters(self, group: Group) -> ClusterListing:
        body = await self.client.get(
            endpoints.clusters_path(group.id, self.items_per_page)
        )
        return decoder.decode_cluster_listing(body)

    async def _collect_cluster_status(
        self, group: Group, cluster_name: str, report: PassReport
    ) -> int:
        body = await self.client.get(
            endpoints.cluster_status_path(group.id, cluster_name)
        )
        status = decoder.decode_change_status(body)
        return self._emit(report, map_change_status(group, cluster_name, status))

    # --- Account-level billing ---
    async def _collect_account(
        self, gate: asyncio.Semaphore, report: PassReport
    ) -> None:
        async def work() -> None:
            await self._run_step(
                report,
                ACCOUNT_ENTITY_ID,
                Step.HOURLY_RATE,
                lambda: self._collect_hourly_rate(report),
            )
            await self._run_step(
                report,
                ACCOUNT_ENTITY_ID,
                Step.DEPLOYMENT_COSTS,
                lambda: self._collect_deployment_costs(report),
            )

        await self._gated(gate, report, work)

    async def _collect_hourly_rate(self, report: PassReport) -> int:
        now = self._clock()
        until = now if self.chart_bounded_window else None
        body = await self.client.get(
            endpoints.charts_path(now - self.chart_window, until)
        )
        series = decoder.decode_chart_series(body, self.chart_api_version)
        if not series.data:
            logger.info(
                "chart_series_empty",
                window_hours=self.chart_window / timedelta(hours=1),
            )
        return self._emit(report, map_chart_series(series))

    async def _collect_deployment_costs(self, report: PassReport) -> int:
        body = await self.client.get(
            endpoints.deployments_path(endpoints.month_start(self._clock()))
        )
        costs = decoder.decode_deployment_costs(body)
        return self._emit(report, map_deployment_costs(costs))

    def _record_crashed_tasks(
        self, results: list[object], groups: list[Group], report: PassReport
    ) -> None:
        entity_ids = [group.id for group in groups]
        if self.collect_billing:
            entity_ids.append(ACCOUNT_ENTITY_ID)
        for entity_id, result in zip(entity_ids, results):
            if isinstance(result, BaseException):
                report.failures.append(
                    StepFailure(
                        entity_id=entity_id,
                        step="task",
                        error_code="internal_error",
                        message=str(result),
                    )
                )
                logger.error(
                    "collection_task_crashed",
                    entity_id=entity_id,
                    error=str(result),
                    error_type=type(result).__name__,
                )
