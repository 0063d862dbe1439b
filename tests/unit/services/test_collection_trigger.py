from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import REGISTRY

from billing_exporter.modules.collection.domain.collector import PassReport
from billing_exporter.services.scheduler import COLLECTION_JOB_ID, CollectionTrigger
from billing_exporter.shared.core.exceptions import (
    CollectionInProgressError,
    CollectionPassError,
    UnauthorizedError,
)


def _passes_total(status: str) -> float:
    return (
        REGISTRY.get_sample_value(
            "exporter_collection_passes_total", labels={"status": status}
        )
        or 0.0
    )


@pytest.fixture
def collector():
    mock = MagicMock()
    mock.run_collection_pass = AsyncMock()
    return mock


@pytest.mark.asyncio
async def test_collection_job_returns_report(collector):
    report = PassReport(pass_id="abc", entities=3)
    collector.run_collection_pass.return_value = report
    trigger = CollectionTrigger(collector, 60, scheduler=MagicMock())

    assert await trigger.collection_job() is report

    status = trigger.get_status()
    assert status["last_run_success"] is True
    assert status["last_pass_id"] == "abc"
    assert status["last_entities"] == 3
    assert status["last_failures"] == 0


@pytest.mark.asyncio
async def test_collection_job_swallows_pass_fatal_errors(collector):
    cause = UnauthorizedError("groups?itemsPerPage=500")
    collector.run_collection_pass.side_effect = CollectionPassError("failed", cause=cause)
    trigger = CollectionTrigger(collector, 60, scheduler=MagicMock())

    assert await trigger.collection_job() is None
    assert trigger.get_status()["last_run_success"] is False


@pytest.mark.asyncio
async def test_collection_job_counts_skipped_passes(collector):
    collector.run_collection_pass.side_effect = CollectionInProgressError()
    trigger = CollectionTrigger(collector, 60, scheduler=MagicMock())
    before = _passes_total("skipped")

    assert await trigger.collection_job() is None
    assert _passes_total("skipped") == before + 1
    assert trigger.get_status()["last_run_success"] is None


@pytest.mark.asyncio
async def test_collection_job_propagates_unexpected_errors(collector):
    collector.run_collection_pass.side_effect = RuntimeError("bug")
    trigger = CollectionTrigger(collector, 60, scheduler=MagicMock())

    with pytest.raises(RuntimeError):
        await trigger.collection_job()


def test_start_registers_non_overlapping_interval_job(collector):
    scheduler = MagicMock()
    trigger = CollectionTrigger(collector, 30, scheduler=scheduler)

    trigger.start()

    scheduler.add_job.assert_called_once()
    args, kwargs = scheduler.add_job.call_args
    assert args[0] == trigger.collection_job
    assert kwargs["id"] == COLLECTION_JOB_ID
    assert kwargs["max_instances"] == 1
    assert kwargs["coalesce"] is True
    assert kwargs["trigger"].interval.total_seconds() == 30
    scheduler.start.assert_called_once()


def test_stop_shuts_down_running_scheduler(collector):
    scheduler = MagicMock()
    scheduler.running = True
    trigger = CollectionTrigger(collector, 30, scheduler=scheduler)

    trigger.stop()

    scheduler.shutdown.assert_called_once_with(wait=False)
