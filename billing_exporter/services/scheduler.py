from datetime import datetime, timezone
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from billing_exporter.modules.collection.domain.collector import (
    CollectionScheduler,
    PassReport,
)
from billing_exporter.shared.core.exceptions import (
    CollectionInProgressError,
    CollectionPassError,
)
from billing_exporter.shared.core.ops_metrics import COLLECTION_PASSES_TOTAL

logger = structlog.get_logger()

COLLECTION_JOB_ID = "collection_pass"


class CollectionTrigger:
    """Runs collection passes on a fixed interval via APScheduler."""

    def __init__(
        self,
        collector: CollectionScheduler,
        interval_seconds: int,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.collector = collector
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._last_report: Optional[PassReport] = None
        self._last_run_success: Optional[bool] = None

    async def collection_job(self) -> Optional[PassReport]:
        """One pass per tick. Pass-fatal errors are logged, not raised into APScheduler."""
        try:
            report = await self.collector.run_collection_pass()
        except CollectionInProgressError:
            COLLECTION_PASSES_TOTAL.labels(status="skipped").inc()
            logger.warning("collection_pass_skipped_in_progress")
            return None
        except CollectionPassError as exc:
            self._last_run_success = False
            logger.error(
                "collection_job_failed",
                error_code=exc.cause.code,
                error=exc.message,
            )
            return None

        self._last_report = report
        self._last_run_success = True
        return report

    def start(self) -> None:
        """Schedules the interval job (first run immediately) and starts APScheduler."""
        self.scheduler.add_job(
            self.collection_job,
            trigger=IntervalTrigger(
                seconds=self.interval_seconds, timezone=timezone.utc
            ),
            id=COLLECTION_JOB_ID,
            next_run_time=datetime.now(timezone.utc),
            # Passes never overlap; a tick that fires mid-pass is dropped
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "collection_trigger_started", interval_seconds=self.interval_seconds
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("collection_trigger_stopped")

    def get_status(self) -> dict:
        report = self._last_report
        return {
            "running": self.scheduler.running,
            "last_run_success": self._last_run_success,
            "last_pass_id": report.pass_id if report else None,
            "last_entities": report.entities if report else None,
            "last_failures": len(report.failures) if report else None,
        }
